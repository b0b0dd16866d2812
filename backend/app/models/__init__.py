from app.models.user import User
from app.models.wallet import Wallet
from app.models.payment_link import PaymentLink
from app.models.transaction import Transaction
from app.models.conversation_state import ConversationState

__all__ = ["User", "Wallet", "PaymentLink", "Transaction", "ConversationState"]
