"""
Dual-staking settlement and reputation engine.

Analysts open pools on news items with an initial stake; other users
stake for or against each pool. When a news item resolves, every pool on
it is settled pro-rata and its author's reputation is updated.

Modules:
    errors - Typed failure reasons
    models - News items, pools, stakes and settlement results
    amounts - Decimal string to minor-unit conversion
    journal - Append-only JSONL journal with schema validation
    ledger - Stake intake and per-pool bookkeeping
    settlement - Fee extraction and pro-rata payouts
    reputation - Accuracy, streaks and tiers per analyst
    aggregator - News totals and read-side statistics
    news - News item registry and resolution state
    market - Facade wiring the components together
    reporter - Markdown and JSON reports
    cli - Command-line interface entrypoints
"""

from . import errors
from . import models
from . import amounts
from . import journal
from . import ledger
from . import settlement
from . import reputation
from . import aggregator
from . import news
from . import market
from . import reporter
from . import cli

__version__ = "1.0.0"
