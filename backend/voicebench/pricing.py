from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict

from .config import USD_TO_CNY_RATE, debug_log


BillingUnit = Literal["per_char", "per_1k_chars", "per_10k_chars", "per_minute", "per_second"]


class PricingRule(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    id: str
    service_type: Literal["asr", "tts"]
    template_type: Optional[str] = None
    model_id: Optional[str] = None
    unit: BillingUnit
    amount: float
    currency: Literal["USD", "CNY"] = "USD"
    source: str = ""
    is_estimated: bool = False
    chars_per_minute: Optional[int] = None


PRICING_RULES: List[PricingRule] = [
    PricingRule(id="openai-tts-1", service_type="tts", template_type="openai", model_id="tts-1",
                unit="per_1k_chars", amount=0.015, source="OpenAI Pricing"),
    PricingRule(id="openai-tts-1-hd", service_type="tts", template_type="openai", model_id="tts-1-hd",
                unit="per_1k_chars", amount=0.03, source="OpenAI Pricing"),
    # Billed by token upstream, approximated per minute of speech
    PricingRule(id="openai-gpt4o-mini-tts-estimated", service_type="tts", template_type="openai",
                model_id="gpt-4o-mini-tts", unit="per_minute", amount=0.015, chars_per_minute=750,
                is_estimated=True, source="OpenAI Pricing"),
    PricingRule(id="qwen-qwen3-tts-flash", service_type="tts", template_type="qwen", model_id="qwen3-tts-flash",
                unit="per_10k_chars", amount=0.8, currency="CNY", source="DashScope pricing"),
    PricingRule(id="minimax-speech-02-turbo", service_type="tts", template_type="minimax",
                model_id="speech-02-turbo", unit="per_10k_chars", amount=2, currency="CNY",
                source="MiniMax pay-as-you-go"),
    # 1 credit per character
    PricingRule(id="cartesia-sonic", service_type="tts", template_type="cartesia", unit="per_char",
                amount=0.0000533, is_estimated=True, source="https://cartesia.ai/pricing"),
    PricingRule(id="qwen-paraformer-v2", service_type="asr", template_type="qwen", model_id="paraformer-v2",
                unit="per_second", amount=0.00008, currency="CNY", source="DashScope pricing"),
]


def find_rule(service_kind: str, template_type: Optional[str], model_id: Optional[str]) -> Optional[PricingRule]:
    for rule in PRICING_RULES:
        if rule.service_type != service_kind:
            continue
        if rule.model_id and rule.model_id != model_id:
            continue
        if rule.template_type and rule.template_type != template_type:
            continue
        return rule
    return None


def _usage(rule: PricingRule, text_length: int, duration_seconds: Optional[float]) -> float:
    if rule.unit == "per_char":
        return float(text_length)
    if rule.unit == "per_1k_chars":
        return text_length / 1000.0
    if rule.unit == "per_10k_chars":
        return text_length / 10000.0
    if rule.unit == "per_minute":
        return text_length / float(rule.chars_per_minute or 750)
    if rule.unit == "per_second":
        return float(duration_seconds or 0.0)
    return 0.0


def to_usd(amount: float, currency: str) -> float:
    if currency == "CNY":
        return amount / USD_TO_CNY_RATE
    return amount


def calculate_cost(
    service_kind: str,
    template_type: Optional[str],
    model_id: Optional[str],
    text_length: int = 0,
    duration_seconds: Optional[float] = None,
) -> Optional[Dict[str, Any]]:
    """Price one call; None when no rule covers the template/model pair."""
    rule = find_rule(service_kind, template_type, model_id)
    if rule is None:
        debug_log(f"No pricing rule for {service_kind} template={template_type} model={model_id}")
        return None
    usage = _usage(rule, text_length, duration_seconds)
    original = usage * rule.amount
    return {
        "amount_usd": to_usd(original, rule.currency),
        "original_amount": original,
        "original_currency": rule.currency,
        "unit": rule.unit,
        "usage": usage,
        "rule_id": rule.id,
        "is_estimated": rule.is_estimated,
        "exchange_rate": USD_TO_CNY_RATE if rule.currency == "CNY" else 1.0,
    }
