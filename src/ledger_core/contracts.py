"""
Data contracts for ledger-core: Fill, Lot, Trade and merge statistics.

ledger-core consumes raw venue records and produces Trades.
No I/O; these are plain dataclasses.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class Direction(str, Enum):
    """Position direction of a fill, lot or trade."""

    LONG = "LONG"
    SHORT = "SHORT"

    def opposite(self) -> "Direction":
        return Direction.SHORT if self is Direction.LONG else Direction.LONG


class TradeStatus(str, Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class InstrumentType(str, Enum):
    """Asset class of the traded instrument."""

    STOCK = "STOCK"
    OPTION = "OPTION"
    CRYPTO = "CRYPTO"
    FOREX = "FOREX"
    FUTURES = "FUTURES"
    SPOT = "SPOT"


class ActivityClass(str, Enum):
    """Automated vs manual classification of a fill or trade."""

    BOT = "BOT"
    MANUAL = "MANUAL"


# ---------------------------------------------------------------------------
# Fill / Lot
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Fill:
    """One normalized execution record (one side of one order). Timestamps in UTC."""

    id: str
    venue: str
    instrument: str
    direction: Direction
    price: float
    qty: float
    timestamp: datetime
    fee: float = 0.0
    realized_pnl: float | None = None   # set only on venue-reported closes
    leverage: float = 1.0
    notional: float | None = None       # venue-reported total value of the fill
    order_id: str | None = None
    tag: str = ""
    instrument_type: InstrumentType = InstrumentType.CRYPTO
    is_bot: bool = False
    ambiguous_side: bool = False

    @property
    def reports_close(self) -> bool:
        """True if the venue reported a realized pnl for this fill."""
        return self.realized_pnl is not None and self.realized_pnl != 0

    @property
    def notional_per_unit(self) -> float | None:
        if self.notional is None or self.qty <= 0:
            return None
        return self.notional / self.qty


@dataclass
class Lot:
    """Open, unmatched portion of a position. ``qty`` is the remaining quantity."""

    id: str
    instrument: str
    direction: Direction
    entry_time: datetime
    entry_price: float
    qty: float
    leverage: float = 1.0
    fee: float = 0.0
    notes: str = ""
    notional_per_unit: float | None = None
    is_bot: bool = False
    instrument_type: InstrumentType = InstrumentType.CRYPTO


# ---------------------------------------------------------------------------
# Trade
# ---------------------------------------------------------------------------

# Fields a venue sync may confirm or correct. A difference in any of them
# turns an id match into an update.
SERVER_CONFIRMED_FIELDS = ("status", "pnl", "is_bot", "instrument_type", "margin")

# Fields only the user edits. Merge never overwrites them.
ANNOTATION_FIELDS = ("strategy_id", "mistakes", "initial_risk", "attachment_ids")


@dataclass(frozen=True)
class Trade:
    """Journal record: a closed round trip or a still-open lot.

    ``id`` must stay stable across re-syncs so user annotations survive.
    """

    id: str
    venue: str
    instrument: str
    direction: Direction
    entry_price: float
    exit_price: float
    entry_time: datetime
    exit_time: datetime
    qty: float
    status: TradeStatus
    instrument_type: InstrumentType = InstrumentType.CRYPTO
    fees: float = 0.0
    pnl: float = 0.0
    pnl_pct: float = 0.0
    leverage: float = 1.0
    notional: float = 0.0
    margin: float = 0.0
    is_bot: bool = False
    notes: str = ""
    external_order_id: str | None = None
    is_orphan: bool = False
    # user annotations
    strategy_id: str | None = None
    mistakes: tuple[str, ...] = ()
    initial_risk: float | None = None
    attachment_ids: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.qty > 0:
            raise ValueError(f"Trade {self.id}: quantity must be positive, got {self.qty}")
        if self.entry_time > self.exit_time:
            raise ValueError(f"Trade {self.id}: entry_time is after exit_time")
        if self.status == TradeStatus.CLOSED and (self.entry_price is None or self.exit_price is None):
            raise ValueError(f"Trade {self.id}: closed trade needs entry and exit price")

    @property
    def is_closed(self) -> bool:
        return self.status == TradeStatus.CLOSED


# ---------------------------------------------------------------------------
# Normalization / merge outcomes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SkippedFill:
    """A raw record that failed normalization. ``index`` is its batch position."""

    index: int
    reason: str


@dataclass(frozen=True)
class MergeStats:
    """Merge outcome counts.

    ``added``, ``updated`` and ``duplicate`` are the merge statistics proper.
    ``unchanged`` is kept apart: it counts id matches whose venue fields were
    already current, and is not part of ``total``.
    """

    added: int = 0
    updated: int = 0
    duplicate: int = 0
    unchanged: int = 0

    @property
    def total(self) -> int:
        """added + updated + duplicate."""
        return self.added + self.updated + self.duplicate

    @property
    def candidates(self) -> int:
        """Every incoming trade, including unchanged id matches."""
        return self.total + self.unchanged

    def __add__(self, other: "MergeStats") -> "MergeStats":
        return MergeStats(
            added=self.added + other.added,
            updated=self.updated + other.updated,
            duplicate=self.duplicate + other.duplicate,
            unchanged=self.unchanged + other.unchanged,
        )


@dataclass(frozen=True)
class CleanupPlan:
    """Which trade ids to keep and which to remove when collapsing duplicates."""

    keep: list[str] = field(default_factory=list)
    remove: list[str] = field(default_factory=list)
