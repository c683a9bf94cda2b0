"""Error taxonomy shared by the pool store, generator and scheduler."""


class PromptPoolError(Exception):
    """Base class for prompt pool failures."""


class PoolReadError(PromptPoolError):
    """The prompt pool could not be read; there is no fallback without it."""


class GenerationError(PromptPoolError, ValueError):
    """The generative text service failed or returned unusable output."""


class NoContentAvailable(PromptPoolError):
    """Neither the cached pool nor fresh generation produced a main batch."""

    def __init__(self, user_id: str):
        super().__init__(f"No prompts available for user {user_id}")
        self.user_id = user_id


class ScoringError(PromptPoolError, ValueError):
    """The utterance scorer failed or returned unusable output."""
