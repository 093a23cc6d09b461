"""
jsonwebhooks: poll JSON endpoints and fire webhooks when a condition flips.

Each configured query is polled on its own interval. A JSONPath expression
picks a value out of the response; its truthiness (optionally inverted) is
the query's condition. The first poll only records the condition. Later
polls send the webhook when the condition changed, or on every poll when
the query asks for resends.
"""

__version__ = "1.0.2"

from jsonwebhooks.config import QuerySpec, WebhooksConfig, load_config
from jsonwebhooks.runner import QueryRunner, RunOutcome
from jsonwebhooks.scheduler import QueryScheduler
from jsonwebhooks.state import ConditionState

__all__ = [
    "QuerySpec",
    "WebhooksConfig",
    "load_config",
    "QueryRunner",
    "RunOutcome",
    "QueryScheduler",
    "ConditionState",
]
