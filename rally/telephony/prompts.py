"""Spoken prompts for the wake-up call voice flow."""


SNOOZE_INVITATION = "If you'd like to snooze, say how many minutes."

GOODBYE = "Have a wonderful day!"

SNOOZE_DISABLED = "You have disabled snoozing for this call. The call will end now."

SNOOZE_LIMIT_REACHED = "Maximum snooze limit reached. The call will end now."


def snooze_confirmation(minutes: int) -> str:
    """Prompt confirming a recognized snooze request."""
    return f"Okay, I'll call you back in {minutes} minutes."


def snooze_fallback(minutes: int) -> str:
    """Prompt used when the transcript named no known duration."""
    return f"I didn't understand that. I'll snooze for the default {minutes} minutes."
