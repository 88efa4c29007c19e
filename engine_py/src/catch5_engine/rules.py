"""
Game rule configuration and validation.
"""

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from .constants import DECK_COLORS, DEFAULT_DECK_COLOR, DEFAULT_TARGET_SCORE


class CpuTuning(BaseModel):
    """Tunable thresholds for the CPU player. These set skill, not correctness."""

    bid_confidence_base: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Chance of bidding a hand whose estimate only just beats the high bid"
    )
    bid_confidence_divisor: float = Field(
        default=4.0,
        gt=0.0,
        description="Each point of margin over the high bid adds 1/divisor to the bid chance"
    )
    desperate_dig_threshold: int = Field(
        default=2,
        ge=0,
        description="Best suit score at or below which a forced bidder names a void suit"
    )


class RuleConfig(BaseModel):
    """Configuration for game rules and settings."""

    target_score: int = Field(
        default=DEFAULT_TARGET_SCORE,
        ge=5,
        le=100,
        description="Score that ends the game"
    )
    deck_color: str = Field(
        default=DEFAULT_DECK_COLOR,
        description="Card-back colour shown to clients"
    )
    auto_claim: bool = Field(
        default=False,
        description="Finish the round automatically when one seat holds every remaining trump"
    )
    turn_timeout: float = Field(
        default=20.0,
        ge=0.0,
        le=300.0,
        description="Seconds a human seat has to act (0 = no timeout)"
    )
    turn_timeout_buffer: float = Field(
        default=1.5,
        ge=0.0,
        description="Grace added to the turn timeout before the default action is taken"
    )
    cpu_delay: float = Field(
        default=1.2,
        ge=0.0,
        description="CPU think time in seconds"
    )
    cpu_jitter: float = Field(
        default=0.3,
        ge=0.0,
        description="Random extra CPU think time in seconds"
    )
    trick_pause: float = Field(
        default=2.5,
        ge=0.0,
        description="Pause after a completed trick so clients can show it"
    )
    cpu: CpuTuning = Field(default_factory=CpuTuning)

    @field_validator('deck_color')
    @classmethod
    def validate_deck_color(cls, v):
        """Only known card backs are accepted."""
        if v not in DECK_COLORS:
            raise ValueError(f'deck_color must be one of {", ".join(DECK_COLORS)}')
        return v

    def human_turn_delay(self) -> Optional[float]:
        """Seconds before a human seat's default action, or None when turns are untimed."""
        if self.turn_timeout <= 0:
            return None
        return self.turn_timeout + self.turn_timeout_buffer


# Default configuration instance
default_rules = RuleConfig()


def create_rules(settings=None, **overrides) -> RuleConfig:
    """
    Create a RuleConfig from process settings with optional per-room overrides.

    ``None`` overrides are ignored so optional request fields fall back to
    the defaults.
    """
    config_dict = default_rules.model_dump()
    if settings is not None:
        config_dict.update(
            auto_claim=settings.auto_claim,
            turn_timeout=settings.turn_timeout,
            turn_timeout_buffer=settings.turn_timeout_buffer,
            cpu_delay=settings.cpu_delay,
            cpu_jitter=settings.cpu_jitter,
            trick_pause=settings.trick_pause,
        )
    config_dict.update({key: value for key, value in overrides.items() if value is not None})
    return RuleConfig(**config_dict)
