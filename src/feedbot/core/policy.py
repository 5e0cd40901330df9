"""Effective delivery policy: subscription override over guild default."""

from dataclasses import dataclass

from feedbot.models import SubscriptionTarget, TriState


@dataclass(frozen=True)
class DeliveryPolicy:
    """How an item is delivered to one channel."""

    embeds: bool = False
    webhooks: bool = False


def resolve_policy(
    default_embeds: bool,
    default_webhooks: bool,
    override_embeds: TriState = TriState.INHERIT,
    override_webhooks: TriState = TriState.INHERIT,
) -> DeliveryPolicy:
    """Each setting is the override when set, else the guild default."""
    return DeliveryPolicy(
        embeds=TriState(override_embeds).resolve(default_embeds),
        webhooks=TriState(override_webhooks).resolve(default_webhooks),
    )


def policy_for_target(target: SubscriptionTarget) -> DeliveryPolicy:
    return resolve_policy(
        target.default_embeds,
        target.default_webhooks,
        target.override_embeds,
        target.override_webhooks,
    )
