"""
Cost model for provider usage.

Two tiers are priced per character: standard voices and premium (Neural2)
voices, premium being four times the standard rate by default. Costs are
computed with Decimal and kept exact for accumulation; ``CostQuote`` offers
the 2-decimal presentation value.

Example:
    >>> model = CostModel()
    >>> model.cost(11, "female")
    4.4e-05
    >>> model.quote(11, "female").rounded_usd
    0.0
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Dict, Optional

from tts_relay.core.config import Defaults, PricingConfig
from tts_relay.tts.voices import VOICE_CATALOG

PREMIUM_TOKENS = frozenset({"neural-female", "neural-male"})
PREMIUM_MARKER = "Neural2"

QUALITY_LEVEL = "Standard & Neural2 quality voices"


class VoiceTier(str, Enum):
    STANDARD = "standard"
    PREMIUM = "premium"


def _dec(value: float) -> Decimal:
    # str() keeps 0.000004 as written instead of its binary expansion
    return Decimal(str(value))


@dataclass(frozen=True)
class CostQuote:
    """
    Cost of a number of characters at one tier.

    Attributes:
        characters: Billed characters.
        tier: Pricing tier of the voice.
        rate_per_char_usd: Per-character rate applied.
        cost_usd: Exact cost (characters x rate).
    """
    characters: int
    tier: VoiceTier
    rate_per_char_usd: float
    cost_usd: float

    @property
    def rounded_usd(self) -> float:
        """Cost rounded half-up to cents."""
        return float(_dec(self.cost_usd).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "characters": self.characters,
            "tier": self.tier.value,
            "rate_per_char_usd": self.rate_per_char_usd,
            "cost_usd": self.cost_usd,
            "rounded_usd": self.rounded_usd,
        }


class CostModel:
    """
    Per-character pricing of voice tokens and provider voice ids.

    Args:
        standard_per_char_usd: Rate for standard voices.
        premium_per_char_usd: Rate for Neural2 voices.
        free_quota_per_month: Monthly free characters (reported only).
    """

    def __init__(
        self,
        standard_per_char_usd: float = Defaults.PRICING_STANDARD_PER_CHAR_USD,
        premium_per_char_usd: float = Defaults.PRICING_PREMIUM_PER_CHAR_USD,
        free_quota_per_month: int = Defaults.PRICING_FREE_QUOTA_PER_MONTH,
    ):
        self._rates = {
            VoiceTier.STANDARD: _dec(standard_per_char_usd),
            VoiceTier.PREMIUM: _dec(premium_per_char_usd),
        }
        self.free_quota_per_month = free_quota_per_month

    @classmethod
    def from_config(cls, config: PricingConfig) -> "CostModel":
        return cls(
            standard_per_char_usd=config.standard_per_char_usd,
            premium_per_char_usd=config.premium_per_char_usd,
            free_quota_per_month=config.free_quota_per_month,
        )

    @staticmethod
    def tier(voice: Optional[str]) -> VoiceTier:
        """
        Tier of a voice token or provider voice id.

        Neural2 names and the neural-* tokens are premium; everything else,
        Wavenet names included, is standard.
        """
        if voice and (voice in PREMIUM_TOKENS or PREMIUM_MARKER in voice):
            return VoiceTier.PREMIUM
        return VoiceTier.STANDARD

    def rate(self, voice: Optional[str]) -> Decimal:
        return self._rates[self.tier(voice)]

    def cost_decimal(self, characters: int, voice: Optional[str]) -> Decimal:
        """Exact cost as Decimal, for accumulation across segments."""
        return Decimal(max(0, characters)) * self.rate(voice)

    def cost(self, characters: int, voice: Optional[str]) -> float:
        """Exact cost in USD."""
        return float(self.cost_decimal(characters, voice))

    def quote(self, characters: int, voice: Optional[str]) -> CostQuote:
        tier = self.tier(voice)
        return CostQuote(
            characters=characters,
            tier=tier,
            rate_per_char_usd=float(self._rates[tier]),
            cost_usd=self.cost(characters, voice),
        )

    def pricing_info(self) -> Dict[str, Any]:
        """Public pricing summary served by the pricing endpoint."""
        standard = self._rates[VoiceTier.STANDARD]
        premium = self._rates[VoiceTier.PREMIUM]
        per_million_standard = standard * 1_000_000
        per_million_premium = premium * 1_000_000
        return {
            "standardCostPerCharacterUSD": float(standard),
            "neural2CostPerCharacterUSD": float(premium),
            "standardCostPer1000CharactersUSD": self.cost(1000, "female"),
            "neural2CostPer1000CharactersUSD": self.cost(1000, "neural-female"),
            "freeQuotaPerMonth": self.free_quota_per_month,
            "supportedVoices": [
                {
                    "value": v.value,
                    "label": v.label,
                    "googleVoice": v.google_voice,
                    "costPer1000Chars": self.cost(1000, v.value),
                }
                for v in VOICE_CATALOG
            ],
            "qualityLevel": QUALITY_LEVEL,
            "pricingNote": (
                f"Standard voices: ${per_million_standard.normalize():f} per 1M characters. "
                f"Neural2 voices: ${per_million_premium.normalize():f} per 1M characters."
            ),
            "lastUpdated": datetime.now(timezone.utc).isoformat(),
        }
