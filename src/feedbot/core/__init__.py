"""Core logic for feedbot.

Command-layer code (chat commands, scripts) uses the service facades;
the poller is built from a Dispatcher wrapped in a PollScheduler:

    from feedbot.core import create_dispatcher, create_scheduler

    scheduler = create_scheduler(create_dispatcher(db_manager))
    scheduler.start()
"""

from feedbot.core.diff import DiffResult, compute_diff
from feedbot.core.dispatcher import (
    CycleError,
    CycleStats,
    Dispatcher,
    ErrorKind,
    create_dispatcher,
)
from feedbot.core.notifier import DeliveryResult, DeliveryStatus, DiscordNotifier, Notifier
from feedbot.core.policy import DeliveryPolicy, resolve_policy
from feedbot.core.scheduler import PollScheduler, SchedulerStats, create_scheduler
from feedbot.core.services import (
    GuildService,
    SubscribeResult,
    SubscriptionService,
    create_guild_service,
    create_subscription_service,
)
from feedbot.core.source import FeedItem, FeedSource, HttpFeedSource

__all__ = [
    # Services
    "SubscriptionService",
    "GuildService",
    "SubscribeResult",
    "create_subscription_service",
    "create_guild_service",
    # Poller
    "Dispatcher",
    "PollScheduler",
    "create_dispatcher",
    "create_scheduler",
    # Adapters
    "FeedSource",
    "HttpFeedSource",
    "Notifier",
    "DiscordNotifier",
    # Result types
    "FeedItem",
    "DiffResult",
    "DeliveryPolicy",
    "DeliveryResult",
    "DeliveryStatus",
    "CycleError",
    "CycleStats",
    "ErrorKind",
    "SchedulerStats",
    "compute_diff",
    "resolve_policy",
]
