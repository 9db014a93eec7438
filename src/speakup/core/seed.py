"""Built-in bootstrap catalog.

Five A1 exercises written to the store by the seed command. Seeding is an
administrative step; steady-state sessions never depend on it.
"""

from speakup.core.models import Exercise, ExerciseType

SEED_EXERCISES: tuple[Exercise, ...] = (
    Exercise(
        id="a1_001",
        level="A1",
        kind=ExerciseType.MULTIPLE_CHOICE,
        prompt="How do you greet someone in the morning?",
        options=("Good morning", "Good night", "Goodbye", "See you"),
        correct_option_index=0,
        explanation="'Good morning' is the standard greeting used in the morning hours.",
    ),
    Exercise(
        id="a1_002",
        level="A1",
        kind=ExerciseType.MULTIPLE_CHOICE,
        prompt="Which sentence is correct?",
        options=(
            "She is a teacher.",
            "She am a teacher.",
            "She are a teacher.",
            "She be a teacher.",
        ),
        correct_option_index=0,
        explanation="For he/she/it we use 'is'. The verb 'to be': I am, You are, He/She/It is.",
    ),
    Exercise(
        id="a1_003",
        level="A1",
        kind=ExerciseType.MULTIPLE_CHOICE,
        prompt="What does 'Hello, how are you?' mean in common usage?",
        options=(
            "A greeting asking about someone's wellbeing",
            "A farewell expression",
            "A way to say thank you",
            "A question about the weather",
        ),
        correct_option_index=0,
        explanation="'Hello, how are you?' is a basic greeting used to acknowledge and check on someone.",
    ),
    Exercise(
        id="a1_004",
        level="A1",
        kind=ExerciseType.MULTIPLE_CHOICE,
        prompt="Choose the correct response to 'What is your name?'",
        options=(
            "My name is Maria.",
            "I have 20 years.",
            "I am fine, thank you.",
            "Nice to meet you.",
        ),
        correct_option_index=0,
        explanation="The correct answer to 'What is your name?' introduces your name. 'My name is ___' is the standard form.",
    ),
    Exercise(
        id="a1_005",
        level="A1",
        kind=ExerciseType.FILL_IN_THE_BLANK,
        prompt="Please ___ down. (invitar a sentarse)",
        options=("sit", "sat", "sits", "sitting"),
        correct_option_index=0,
        explanation="After 'please', use the base form of the verb. 'Please sit down' is a polite invitation.",
    ),
)
