"""Error taxonomy for the progress engine.

- AuthenticationMissingError: no signed-in user id available
- SubscriptionFailureError: transport error on a live subscription
- PersistenceFailureError: merge-write or batch-write failed
- MalformedDocumentError: a single document could not be decoded
  (always recovered locally by skipping the document)
"""


class SpeakUpError(Exception):
    """Base class for all engine and store errors."""

    pass


class AuthenticationMissingError(SpeakUpError):
    """Raised when a session is started without a user id."""

    pass


class SubscriptionFailureError(SpeakUpError):
    """Raised when a live store subscription reports a transport error."""

    def __init__(self, collection: str, reason: str):
        self.collection = collection
        self.reason = reason
        super().__init__(f"Subscription to '{collection}' failed: {reason}")


class PersistenceFailureError(SpeakUpError):
    """Raised when a write to the store does not commit."""

    def __init__(self, collection: str, reason: str):
        self.collection = collection
        self.reason = reason
        super().__init__(f"Write to '{collection}' failed: {reason}")


class MalformedDocumentError(SpeakUpError):
    """Raised when a stored document cannot be decoded."""

    def __init__(self, collection: str, doc_id: str, reason: str):
        self.collection = collection
        self.doc_id = doc_id
        self.reason = reason
        super().__init__(f"Malformed document {collection}/{doc_id}: {reason}")
