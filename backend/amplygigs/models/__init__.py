from .base import utcnow
from .user_profile import UserProfile, UserRole
from .booking import Booking, BookingStatus, PaymentStatus, PaymentMethod
from .escrow import EscrowTransaction, EscrowStatus, ReleaseType
from .wallet import (
    ClientWallet,
    ClientWalletTransaction,
    WalletTransactionType,
    WalletTransactionStatus,
)
from .earnings import MusicianWallet, Withdrawal, WithdrawalStatus
from .event import Event, MusicianEvent, TicketPurchase, TicketPaymentStatus
from .moderation import UserReport, ReportStatus, AdminAction
from .live_location import LiveLocation
from .notification import Notification, NotificationPreference
from .social import Post, PostLike, PostComment

__all__ = [
    "utcnow",
    "UserProfile",
    "UserRole",
    "Booking",
    "BookingStatus",
    "PaymentStatus",
    "PaymentMethod",
    "EscrowTransaction",
    "EscrowStatus",
    "ReleaseType",
    "ClientWallet",
    "ClientWalletTransaction",
    "WalletTransactionType",
    "WalletTransactionStatus",
    "MusicianWallet",
    "Withdrawal",
    "WithdrawalStatus",
    "Event",
    "MusicianEvent",
    "TicketPurchase",
    "TicketPaymentStatus",
    "UserReport",
    "ReportStatus",
    "AdminAction",
    "LiveLocation",
    "Notification",
    "NotificationPreference",
    "Post",
    "PostLike",
    "PostComment",
]
