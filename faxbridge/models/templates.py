"""Payloads the agent supplies for each document kind."""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from faxbridge.models.collaborators import RecentConversation


class ProductOption(BaseModel):
    id: Optional[str] = None
    name: str
    price: Optional[float] = None
    currency: str = "¥"
    description: Optional[str] = None
    image_url: Optional[str] = None


class EmailReplyData(BaseModel):
    from_address: str = Field(..., alias="from")
    subject: str = ""
    body: str = ""
    thread_id: Optional[str] = None
    attachment_count: int = 0
    quick_replies: List[str] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)


class ProductSelectionData(BaseModel):
    products: List[ProductOption] = Field(..., min_length=1)
    complementary_items: List[ProductOption] = Field(default_factory=list)
    has_payment_method: bool = False
    delivery_address: Optional[str] = None
    show_images: bool = False


class ConfirmationData(BaseModel):
    message: str
    confirmation_type: Optional[str] = None
    order_id: Optional[str] = None
    tracking_number: Optional[str] = None
    email_recipient: Optional[str] = None


class ClarificationData(BaseModel):
    question: Optional[str] = None
    required_info: List[str] = Field(default_factory=list)
    recent_conversations: List[RecentConversation] = Field(default_factory=list)


class InquiryImage(BaseModel):
    url: str
    caption: Optional[str] = None


class GeneralInquiryData(BaseModel):
    question: Optional[str] = None
    answer: str
    images: List[InquiryImage] = Field(default_factory=list)
    related_topics: List[str] = Field(default_factory=list)


class PaymentSlip(BaseModel):
    product_name: str
    amount: float
    currency: str = "¥"
    barcode_data: str = Field(..., min_length=1)
    symbology: str = "code128"
    expires: Optional[str] = None


class PaymentBarcodeData(BaseModel):
    slips: List[PaymentSlip] = Field(..., min_length=1)
    instructions: str = "Pay at FamilyMart, 7-Eleven, or Lawson. Show the barcode to the cashier."
