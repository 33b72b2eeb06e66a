"""
SQLAlchemy ORM models for the esports arena wallet and tournament system.
"""

import enum
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Boolean,
    Numeric,
    DateTime,
    JSON,
    ForeignKey,
    UniqueConstraint,
    CheckConstraint,
    Index,
)
from arena.database.db import Base
from arena.utils.datetime_utils import utcnow

# Money columns: two decimal places, values handled as Decimal in services
Money = Numeric(12, 2, asdecimal=True)


class UserRole(str, enum.Enum):
    """User role enum."""

    USER = "user"
    ADMIN = "admin"


class UserStatus(str, enum.Enum):
    """Account status enum."""

    ACTIVE = "active"
    BANNED = "banned"


class WalletType(str, enum.Enum):
    """The two independent balances every user holds."""

    DEPOSIT = "deposit"
    WINNINGS = "winnings"


class TransactionType(str, enum.Enum):
    """Wallet transaction type enum."""

    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    JOIN_FEE = "join_fee"
    PRIZE = "prize"
    REFUND = "refund"
    ADMIN_CREDIT = "admin_credit"
    ADMIN_DEBIT = "admin_debit"


class TournamentStatus(str, enum.Enum):
    """Tournament lifecycle status enum."""

    UPCOMING = "upcoming"
    ONGOING = "ongoing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TeamType(str, enum.Enum):
    """Tournament team format."""

    SOLO = "solo"
    DUO = "duo"
    SQUAD = "squad"


# Roster size required to join a tournament of each team type
TEAM_SIZES = {
    TeamType.SOLO.value: 1,
    TeamType.DUO.value: 2,
    TeamType.SQUAD.value: 4,
}


class WithdrawalStatus(str, enum.Enum):
    """Withdrawal request status enum."""

    PENDING = "pending"
    COMPLETED = "completed"
    REJECTED = "rejected"


class SupportTicketStatus(str, enum.Enum):
    """Support ticket status enum."""

    OPEN = "open"
    SOLVED = "solved"


class SenderType(str, enum.Enum):
    """Who wrote a support message."""

    USER = "user"
    ADMIN = "admin"


class IssueType(str, enum.Enum):
    """Support ticket categories."""

    WALLET_ISSUE = "Wallet Issue"
    MATCH_ISSUE = "Match Issue"
    RESULT_ISSUE = "Result Issue"
    APP_BUG = "App Bug"
    OTHER = "Other"


class UserProfile(Base):
    """User profile and wallet. The id is the identity provider's uid."""

    __tablename__ = "users"

    id = Column(String(128), primary_key=True)
    name = Column(String, nullable=False)  # "first last", kept in sync with the parts
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False, default="")
    username = Column(String(50), nullable=False, unique=True)
    email = Column(String, nullable=False, default="")
    mobile_number = Column(String(20), nullable=False, default="")
    profile_photo_url = Column(String(500), nullable=False, default="")
    deposit_balance = Column(Money, nullable=False, default=0)  # user-funded, not withdrawable
    winnings_balance = Column(Money, nullable=False, default=0)  # prize-funded, withdrawable
    tournaments_played = Column(Integer, nullable=False, default=0)
    wins = Column(Integer, nullable=False, default=0)
    total_earnings = Column(Money, nullable=False, default=0)
    role = Column(String(10), nullable=False, default=UserRole.USER.value)
    status = Column(String(10), nullable=False, default=UserStatus.ACTIVE.value)
    referral_code = Column(String(12), nullable=False, unique=True)  # this user's own code
    referred_by = Column(String(12), nullable=True)  # code entered at signup
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("deposit_balance >= 0", name="chk_users_deposit_nonneg"),
        CheckConstraint("winnings_balance >= 0", name="chk_users_winnings_nonneg"),
        Index("idx_users_referral_code", "referral_code"),
    )


class Transaction(Base):
    """Append-only wallet ledger entry."""

    __tablename__ = "wallet_transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(128), ForeignKey("users.id"), nullable=False)
    type = Column(String(20), nullable=False)  # TransactionType enum value
    amount = Column(Money, nullable=False)  # signed: credits positive, debits negative
    description = Column(Text, nullable=False, default="")
    date = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    idempotency_key = Column(String(200), nullable=True, unique=True)  # dedupe for payouts/bonuses

    __table_args__ = (Index("idx_wallet_transactions_user_date", "user_id", "date"),)


class Game(Base):
    """Game catalogue entry that tournaments belong to."""

    __tablename__ = "games"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    image_url = Column(String(500), nullable=False, default="")
    hint = Column(String, nullable=True)  # derived from name, e.g. "free_fire"
    created_at = Column(DateTime(timezone=True), default=utcnow)


class CarouselSlide(Base):
    """Promotional slide shown on the dashboard carousel."""

    __tablename__ = "carousel_slides"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    image_url = Column(String(500), nullable=False, default="")
    hint = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class Tournament(Base):
    """One contest instance."""

    __tablename__ = "tournaments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    game_id = Column(Integer, ForeignKey("games.id"), nullable=True)
    # Game snapshot so listings don't need a join
    game_name = Column(String, nullable=False, default="")
    game_image_url = Column(String(500), nullable=False, default="")
    entry_fee = Column(Money, nullable=False, default=0)
    prize_pool = Column(Money, nullable=False, default=0)
    prize_description = Column(Text, nullable=True)
    per_kill_reward = Column(Money, nullable=False, default=0)
    start_time = Column(DateTime(timezone=True), nullable=False)
    status = Column(String(20), nullable=False, default=TournamentStatus.UPCOMING.value)
    players_joined = Column(Integer, nullable=False, default=0)
    max_players = Column(Integer, nullable=False)
    map = Column(String, nullable=True)
    mode = Column(String, nullable=True)
    team_type = Column(String(10), nullable=False, default=TeamType.SOLO.value)
    rules = Column(Text, nullable=True)
    room_id = Column(String, nullable=True)  # set when the tournament starts
    room_password = Column(String, nullable=True)
    results_submitted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("players_joined >= 0", name="chk_tournaments_players_nonneg"),
        CheckConstraint("players_joined <= max_players", name="chk_tournaments_capacity"),
        CheckConstraint("entry_fee >= 0", name="chk_tournaments_entry_fee_nonneg"),
        Index("idx_tournaments_game_id", "game_id"),
        Index("idx_tournaments_status", "status"),
    )


class TournamentParticipant(Base):
    """A user's (or team leader's) slot in a tournament."""

    __tablename__ = "tournament_participants"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tournament_id = Column(Integer, ForeignKey("tournaments.id"), nullable=False)
    user_id = Column(String(128), ForeignKey("users.id"), nullable=False)
    name = Column(String, nullable=False)  # user's profile name at join time
    email = Column(String, nullable=False, default="")
    in_game_name = Column(String, nullable=False)  # leader's in-game name
    team_members = Column(JSON, nullable=False)  # list of in-game names, leader first
    join_time = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("tournament_id", "user_id", name="uq_participant_tournament_user"),
        Index("idx_participants_user_id", "user_id"),
    )


class TournamentResult(Base):
    """Final placement and prize for one participant of a completed tournament."""

    __tablename__ = "tournament_results"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tournament_id = Column(Integer, ForeignKey("tournaments.id"), nullable=False)
    player_id = Column(String(128), ForeignKey("users.id"), nullable=False)
    rank = Column(Integer, nullable=False)
    kills = Column(Integer, nullable=False, default=0)
    prize = Column(Money, nullable=False, default=0)
    name = Column(String, nullable=False, default="")
    email = Column(String, nullable=False, default="")
    in_game_name = Column(String, nullable=False, default="")
    team_members = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        UniqueConstraint("tournament_id", "player_id", name="uq_result_tournament_player"),
        CheckConstraint("prize >= 0", name="chk_results_prize_nonneg"),
        CheckConstraint("rank >= 1", name="chk_results_rank_positive"),
        CheckConstraint("kills >= 0", name="chk_results_kills_nonneg"),
    )


class WithdrawalRequest(Base):
    """Payout request against a user's winnings balance."""

    __tablename__ = "withdrawals"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(128), ForeignKey("users.id"), nullable=False)
    user_name = Column(String, nullable=False, default="")
    user_email = Column(String, nullable=False, default="")
    amount = Column(Money, nullable=False)
    upi_id = Column(String(100), nullable=False)
    status = Column(String(20), nullable=False, default=WithdrawalStatus.PENDING.value)
    request_date = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    processed_date = Column(DateTime(timezone=True), nullable=True)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("amount > 0", name="chk_withdrawals_amount_positive"),
        Index("idx_withdrawals_user_id", "user_id"),
        Index("idx_withdrawals_status", "status"),
    )


class PendingReferral(Base):
    """Referral outbox row, consumed by the referral worker."""

    __tablename__ = "pending_referrals"

    id = Column(Integer, primary_key=True, autoincrement=True)
    new_user_id = Column(String(128), ForeignKey("users.id"), nullable=False, unique=True)
    referrer_code = Column(String(12), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    processed = Column(Boolean, nullable=False, default=False)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    failure_reason = Column(Text, nullable=True)

    __table_args__ = (Index("idx_pending_referrals_processed", "processed", "created_at"),)


class SupportTicket(Base):
    """User support ticket."""

    __tablename__ = "support_tickets"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(128), ForeignKey("users.id"), nullable=False)
    user_name = Column(String, nullable=False, default="")
    user_email = Column(String, nullable=False, default="")
    issue_type = Column(String(30), nullable=False)  # IssueType enum value
    description = Column(Text, nullable=False)
    status = Column(String(10), nullable=False, default=SupportTicketStatus.OPEN.value)
    tournament_id = Column(Integer, ForeignKey("tournaments.id"), nullable=True)
    tournament_name = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        Index("idx_support_tickets_user_id", "user_id"),
        Index("idx_support_tickets_updated_at", "updated_at"),
    )


class SupportMessage(Base):
    """Chat message inside a support ticket."""

    __tablename__ = "support_messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ticket_id = Column(Integer, ForeignKey("support_tickets.id"), nullable=False)
    sender_id = Column(String(128), nullable=False)
    sender_type = Column(String(10), nullable=False)  # SenderType enum value
    message = Column(Text, nullable=False)
    timestamp = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (Index("idx_support_messages_ticket_ts", "ticket_id", "timestamp"),)


class Setting(Base):
    """Application configuration."""

    __tablename__ = "settings"

    key = Column(String, primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    updated_by = Column(String(128), nullable=True)  # admin user who last changed it
