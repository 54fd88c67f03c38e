from .booking import (
    BookingCreate,
    BookingCancel,
    BookingActionRequest,
    BookingResponse,
    FeeBreakdownResponse,
)
from .wallet import DepositRequest, WalletTransactionResponse, PaymentOptionResponse
from .earnings import WithdrawalCreate, WithdrawalResponse
from .tracking import LocationUpdate, DeviceEvent
from .notification import ChannelFlags, NotificationPreferencesUpdate, MarkReadRequest
from .social import PostCreate, PostUpdate, CommentCreate, PostAuthor, CommentResponse, PostResponse
from .admin import (
    ReportReview,
    SuspendRequest,
    FlagRequest,
    RefundRequest,
    DeleteEventRequest,
    EscrowReleaseRequest,
)
