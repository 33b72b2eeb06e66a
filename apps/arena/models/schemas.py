"""
Pydantic models for API request/response validation.
"""

from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, Field, model_validator


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    database: str
    message: str


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class SignupRequest(BaseModel):
    """Profile creation after signing in with the identity provider."""

    first_name: str = Field(min_length=1)
    last_name: str = ""
    username: str = Field(min_length=3, max_length=50)
    mobile_number: str = Field(min_length=1, max_length=20)
    email: str = ""
    profile_photo_url: str = ""
    referral_code: Optional[str] = None


class ProfileUpdateRequest(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    username: Optional[str] = Field(default=None, min_length=3, max_length=50)
    mobile_number: Optional[str] = None
    profile_photo_url: Optional[str] = None


class AdminUserUpdateRequest(ProfileUpdateRequest):
    email: Optional[str] = None
    role: Optional[str] = None
    status: Optional[str] = None


class UserProfileResponse(BaseModel):
    """User profile with both balances."""

    id: str
    name: str
    first_name: str
    last_name: str
    username: str
    email: str
    mobile_number: str
    profile_photo_url: str
    deposit_balance: float
    winnings_balance: float
    tournaments_played: int
    wins: int
    total_earnings: float
    role: str
    status: str
    referral_code: str
    referred_by: Optional[str] = None
    created_at: Optional[str] = None


# ---------------------------------------------------------------------------
# Wallet
# ---------------------------------------------------------------------------


class TransactionResponse(BaseModel):
    id: int
    user_id: str
    type: str
    amount: float
    description: str
    date: Optional[str] = None


class DepositRequest(BaseModel):
    """A payment confirmed by an admin, credited to the user's deposit balance."""

    user_id: str = Field(min_length=1)
    amount: float


class WalletAdjustRequest(BaseModel):
    """Admin credit (positive) or debit (negative) of one balance."""

    wallet_type: str = Field(pattern="^(deposit|winnings)$")
    amount: float
    reason: str = Field(min_length=1)


class BalanceChangeResponse(BaseModel):
    user_id: str
    deposit_balance: float
    winnings_balance: float
    transaction: TransactionResponse


class WithdrawalCreateRequest(BaseModel):
    amount: float
    upi_id: str = Field(min_length=1, max_length=100)


class WithdrawalResolveRequest(BaseModel):
    """Admin decision; user_id and amount are checked against the request when given."""

    status: str = Field(pattern="^(completed|rejected)$")
    user_id: Optional[str] = None
    amount: Optional[float] = None


class WithdrawalResponse(BaseModel):
    id: int
    user_id: str
    user_name: str
    user_email: str
    amount: float
    upi_id: str
    status: str
    request_date: Optional[str] = None
    processed_date: Optional[str] = None


# ---------------------------------------------------------------------------
# Games & tournaments
# ---------------------------------------------------------------------------


class GameCreateRequest(BaseModel):
    name: str = Field(min_length=1)
    image_url: str = ""


class GameUpdateRequest(BaseModel):
    name: Optional[str] = None
    image_url: Optional[str] = None


class CarouselSlideCreateRequest(BaseModel):
    title: str = Field(min_length=3)
    description: str = Field(min_length=10)
    image_url: str = Field(min_length=1)
    hint: str = Field(min_length=2)


class CarouselSlideUpdateRequest(BaseModel):
    title: Optional[str] = Field(default=None, min_length=3)
    description: Optional[str] = Field(default=None, min_length=10)
    image_url: Optional[str] = Field(default=None, min_length=1)
    hint: Optional[str] = Field(default=None, min_length=2)


class TournamentCreateRequest(BaseModel):
    name: str = Field(min_length=1)
    game_id: int
    entry_fee: float = Field(ge=0)
    prize_pool: float = Field(default=0, ge=0)
    prize_description: Optional[str] = None
    per_kill_reward: float = Field(default=0, ge=0)
    start_time: datetime
    max_players: int = Field(ge=1)
    map: Optional[str] = None
    mode: Optional[str] = None
    team_type: str = Field(default="solo", pattern="^(solo|duo|squad)$")
    rules: Optional[str] = None


class TournamentUpdateRequest(BaseModel):
    name: Optional[str] = None
    entry_fee: Optional[float] = Field(default=None, ge=0)
    prize_pool: Optional[float] = Field(default=None, ge=0)
    prize_description: Optional[str] = None
    per_kill_reward: Optional[float] = Field(default=None, ge=0)
    start_time: Optional[datetime] = None
    max_players: Optional[int] = Field(default=None, ge=1)
    map: Optional[str] = None
    mode: Optional[str] = None
    team_type: Optional[str] = Field(default=None, pattern="^(solo|duo|squad)$")
    rules: Optional[str] = None


class JoinTournamentRequest(BaseModel):
    """In-game names of the roster, team leader first."""

    team_member_names: List[str] = Field(min_length=1)


class RoomDetailsRequest(BaseModel):
    room_id: str = Field(min_length=1)
    room_password: str = ""


class ResultEntry(BaseModel):
    player_id: str
    rank: int = Field(ge=1)
    kills: int = Field(default=0, ge=0)
    prize: float = Field(default=0, ge=0)


class SubmitResultsRequest(BaseModel):
    results: List[ResultEntry] = Field(min_length=1)

    @model_validator(mode="after")
    def check_unique_players(self):
        player_ids = [r.player_id for r in self.results]
        if len(player_ids) != len(set(player_ids)):
            raise ValueError("Each player can only appear once in the results")
        return self


class SettlementSummaryResponse(BaseModel):
    tournament_id: int
    status: str
    total_paid: float
    payouts: int


# ---------------------------------------------------------------------------
# Support
# ---------------------------------------------------------------------------


class SupportTicketCreateRequest(BaseModel):
    issue_type: str
    description: str = Field(min_length=1)
    tournament_id: Optional[int] = None


class SupportMessageCreateRequest(BaseModel):
    message: str = Field(min_length=1)


class TicketStatusUpdateRequest(BaseModel):
    status: str = Field(pattern="^(open|solved)$")


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


class SettingUpdateRequest(BaseModel):
    value: str
