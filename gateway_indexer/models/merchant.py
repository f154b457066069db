from datetime import datetime

from sqlmodel import Field, SQLModel

from gateway_indexer.core.typing import utc_now


class Merchant(SQLModel, table=True):
    """
    Projection of a merchant registered on the settlement contract.

    total_received is a decimal string: token amounts are uint256 and must
    never pass through a float or a bounded integer column.
    """

    __tablename__ = "merchant"

    address: str = Field(primary_key=True)  # EIP-55 checksummed
    business_name: str
    is_active: bool = Field(default=True, index=True)
    registered_at: int  # unix seconds, from the event
    total_received: str = Field(default="0")
    created_at: datetime = Field(default_factory=utc_now)


__all__ = ["Merchant"]
