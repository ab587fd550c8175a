"""Builds document drafts from agent responses.

Each document kind maps to a builder producing the ordered body blocks and
the footer template; pagination and rendering happen later.
"""

from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from faxbridge.core.exceptions import RenderError
from faxbridge.models.collaborators import AgentResponse, DocumentSpec, InterpretationResult, UserRecord
from faxbridge.models.content import (
    BarcodeBlock,
    BlankSpaceBlock,
    ContentBlock,
    HeaderBlock,
    ImageBlock,
    Option,
    OptionListBlock,
    TextBlock,
)
from faxbridge.models.document import DocumentDraft
from faxbridge.models.templates import (
    ClarificationData,
    ConfirmationData,
    EmailReplyData,
    GeneralInquiryData,
    PaymentBarcodeData,
    ProductOption,
    ProductSelectionData,
)
from faxbridge.utils.logging import get_logger
from faxbridge.utils.reference_ids import generate_reference_id, is_reference_id

LOGGER = get_logger(__name__)

BRANDING = "Faxbridge - Your Fax to Internet Bridge"

TITLE_SIZE = 68
SECTION_SIZE = 57
BODY_SIZE = 45
BRANDING_SIZE = 34

WELCOME_OPTIONS = {
    "A": ("email", "How to send and receive emails"),
    "B": ("shopping", "How to shop online safely"),
    "C": ("payment", "How to register payment methods"),
    "D": ("ai", "How to ask questions to AI"),
    "E": ("address_book", "How to manage your contacts"),
}

HELP_TOPICS: Dict[str, Dict[str, Any]] = {
    "email": {
        "title": "HOW TO SEND & RECEIVE EMAILS",
        "description": "Use your fax machine to send emails to anyone. Emails sent to your dedicated address are faxed to you.",
        "examples": [
            "Send email to friend@example.com: Hello from my fax machine!",
            "Reply to an email by circling one of its quick replies",
        ],
        "tips": [
            'Start with "Send email to [address]:" followed by your message',
            "You can use names instead of addresses for saved contacts",
        ],
    },
    "shopping": {
        "title": "HOW TO SHOP ONLINE",
        "description": "Fax us what you need. We find products, show you options with prices, and handle the purchase.",
        "examples": ["I need AA batteries", "Order shampoo and conditioner"],
        "tips": [
            "Be specific about brand, size and quantity",
            "Nothing is bought until you circle an option and fax it back",
        ],
    },
    "payment": {
        "title": "HOW TO REGISTER PAYMENT METHODS",
        "description": "Register a card on file or pay with convenience store barcodes.",
        "examples": ["Use convenience store payment (we send you barcodes)"],
        "tips": ["Barcodes work at FamilyMart, 7-Eleven and Lawson"],
    },
    "ai": {
        "title": "HOW TO ASK AI QUESTIONS",
        "description": "Ask questions in plain words and receive the answer by fax.",
        "examples": ["What's the weather like today?", "How do I cook rice?"],
        "tips": ["Write the reference code of an earlier answer to continue that conversation"],
    },
    "address_book": {
        "title": "HOW TO MANAGE YOUR CONTACTS",
        "description": "Save email addresses under a name so you can write to people by name.",
        "examples": ["Add contact: Son - john@example.com", "Send email to Son: How are you?"],
        "tips": ["People you email are added automatically"],
    },
}


def _letter(index: int, start: str = "A") -> str:
    return chr(ord(start) + index)


def _product_option(product: ProductOption, label: str) -> Option:
    description = product.name if not product.description else f"{product.name} ({product.description})"
    return Option(label=label, description=description, price=product.price, currency=product.currency)


class DocumentBuilder:
    """Turns an agent's document spec into a ``DocumentDraft``.

    Args:
        support_contact: Support line printed in every footer
        branding: Header text on the first block of every document
    """

    def __init__(self, support_contact: str, branding: str = BRANDING):
        self.support_contact = support_contact
        self.branding = branding
        self._builders: Dict[str, Callable[[Dict[str, Any], Optional[InterpretationResult]], tuple]] = {
            "email_reply": self._email_reply,
            "product_selection": self._product_selection,
            "confirmation": self._confirmation,
            "clarification": self._clarification,
            "general_inquiry": self._general_inquiry,
            "payment_barcode": self._payment_barcode,
        }

    def build(self, response: AgentResponse, interpretation: Optional[InterpretationResult] = None) -> DocumentDraft:
        """Build the draft for an agent response.

        Unknown kinds fall back to a confirmation carrying the agent's
        user message.

        Raises:
            RenderError: If the spec data does not match its kind
        """
        spec = response.document_spec
        builder = self._builders.get(spec.kind)
        if builder is None:
            LOGGER.warning("Unknown document kind, sending a confirmation", extra={"kind": spec.kind})
            spec = DocumentSpec(
                kind="confirmation",
                reference_id=spec.reference_id,
                data={"message": response.user_message or "Your request has been processed."},
            )
            builder = self._confirmation

        try:
            label, blocks, context_data = builder(spec.data, interpretation)
        except PydanticValidationError as e:
            raise RenderError(f"Invalid {spec.kind} document data: {str(e)}", original_error=e)

        return self._draft(spec.kind, spec.reference_id, label, blocks, context_data)

    def welcome(self, user: UserRecord, reference_id: Optional[str] = None) -> DocumentDraft:
        """Onboarding document sent after a user's first fax."""
        blocks: List[ContentBlock] = [
            self._title("WELCOME TO FAXBRIDGE!"),
            TextBlock(
                text="Thank you for your first fax! Your fax machine is now connected to the internet.",
                font_size=BODY_SIZE,
                margin_bottom=16,
            ),
        ]
        if user.email_address:
            blocks += [
                self._section("YOUR DEDICATED EMAIL ADDRESS:"),
                TextBlock(text=user.email_address, font_size=SECTION_SIZE, bold=True, alignment="center", margin_bottom=16),
                TextBlock(
                    text="Emails sent to this address are faxed to you automatically.",
                    font_size=BODY_SIZE,
                    margin_bottom=20,
                ),
            ]
        blocks += [
            self._section("WHAT YOU CAN DO:"),
            TextBlock(
                text='- SEND EMAILS: "Send email to friend@example.com: Hello!"\n'
                '- SHOP ONLINE: "I need batteries"\n'
                '- ASK QUESTIONS: "Recipe for cookies"',
                font_size=BODY_SIZE,
                margin_bottom=20,
            ),
            self._section("Circle the topics you would like detailed help with:"),
            OptionListBlock(
                selection="checkbox",
                options=[Option(label=label, description=text) for label, (_, text) in WELCOME_OPTIONS.items()],
                font_size=BODY_SIZE,
                margin_bottom=16,
            ),
            TextBlock(text="What should we call you? (Optional)", font_size=BODY_SIZE, margin_bottom=8),
            BlankSpaceBlock(height=80, margin_bottom=16),
        ]
        context_data = {"kind": "welcome", "topic": "Welcome", "is_welcome": True}
        return self._draft("welcome", reference_id, "Welcome", blocks, context_data)

    def help(self, topic: str, reference_id: Optional[str] = None) -> DocumentDraft:
        """Detailed help document for one welcome topic."""
        content = HELP_TOPICS.get(topic)
        if content is None:
            raise RenderError(f"Unknown help topic: {topic}")

        blocks: List[ContentBlock] = [
            self._title(content["title"]),
            TextBlock(text=content["description"], font_size=BODY_SIZE, margin_bottom=16),
            self._section("EXAMPLES:"),
            TextBlock(
                text="\n".join(f"{i}. {example}" for i, example in enumerate(content["examples"], start=1)),
                font_size=BODY_SIZE,
                margin_bottom=16,
            ),
            self._section("HELPFUL TIPS:"),
            TextBlock(text="\n".join(f"- {tip}" for tip in content["tips"]), font_size=BODY_SIZE),
        ]
        context_data = {"kind": "help", "topic": f"Help: {topic}", "help_topic": topic}
        return self._draft("help", reference_id, "Help Guide", blocks, context_data)

    def _draft(
        self,
        kind: str,
        reference_id: Optional[str],
        label: str,
        blocks: List[ContentBlock],
        context_data: Dict[str, Any],
    ) -> DocumentDraft:
        if not is_reference_id(reference_id):
            if reference_id:
                LOGGER.warning("Ignoring malformed reference id", extra={"reference_id": reference_id})
            reference_id = generate_reference_id()
        header = HeaderBlock(text=self.branding, font_size=BRANDING_SIZE, alignment="center", margin_bottom=12)
        return DocumentDraft(
            kind=kind,
            reference_id=reference_id,
            blocks=[header, *blocks],
            footer_text=f"{label} | Ref: {reference_id} | {self.support_contact}",
            context_data={"kind": kind, **context_data},
            support_contact=self.support_contact,
        )

    def _title(self, text: str) -> TextBlock:
        return TextBlock(text=text, font_size=TITLE_SIZE, bold=True, alignment="center", margin_bottom=16)

    def _section(self, text: str) -> TextBlock:
        return TextBlock(text=text, font_size=SECTION_SIZE, bold=True, margin_bottom=8)

    def _email_reply(self, raw: Dict[str, Any], interpretation: Optional[InterpretationResult]) -> tuple:
        data = EmailReplyData.model_validate(raw)
        blocks: List[ContentBlock] = [
            TextBlock(text=f"Email from {data.from_address}", font_size=SECTION_SIZE, bold=True, margin_bottom=8),
            TextBlock(text=f"Subject: {data.subject}", font_size=SECTION_SIZE, bold=True, margin_bottom=12),
        ]
        if data.attachment_count > 0:
            blocks.append(
                TextBlock(text=f"Attachments: {data.attachment_count}", font_size=BODY_SIZE, bold=True, margin_bottom=12)
            )
        blocks.append(TextBlock(text=data.body, font_size=BODY_SIZE, margin_bottom=16))

        if data.quick_replies:
            blocks += [
                self._section("QUICK REPLIES (Circle one):"),
                OptionListBlock(
                    selection="circle",
                    options=[Option(label=_letter(i), description=reply) for i, reply in enumerate(data.quick_replies)],
                    margin_bottom=16,
                ),
            ]
        blocks += [
            TextBlock(text="Additional comments or write your own reply below:", font_size=BODY_SIZE, margin_bottom=8),
            BlankSpaceBlock(height=100, margin_bottom=16),
        ]
        context_data = {
            "topic": f"Email: {data.subject}" if data.subject else f"Email from {data.from_address}",
            "thread_id": data.thread_id,
            "from": data.from_address,
            "subject": data.subject,
            "quick_replies": data.quick_replies,
        }
        return "Email Reply", blocks, context_data

    def _product_selection(self, raw: Dict[str, Any], interpretation: Optional[InterpretationResult]) -> tuple:
        data = ProductSelectionData.model_validate(raw)
        blocks: List[ContentBlock] = [
            self._title("SHOPPING ORDER FORM"),
            self._section("PRODUCT OPTIONS (Circle one):"),
        ]
        if data.show_images:
            for i, product in enumerate(data.products):
                if product.image_url:
                    blocks.append(
                        ImageBlock(
                            url=product.image_url,
                            width=300,
                            height=200,
                            caption=f"{_letter(i)}. {product.name}",
                            margin_bottom=8,
                        )
                    )
        blocks.append(
            OptionListBlock(
                selection="circle",
                options=[_product_option(product, _letter(i)) for i, product in enumerate(data.products)],
                margin_bottom=16,
            )
        )

        if data.complementary_items:
            # Add-on letters continue after the product letters
            start = len(data.products)
            blocks += [
                self._section("SUGGESTED ADDITIONS (Optional, tick any):"),
                OptionListBlock(
                    selection="checkbox",
                    options=[
                        _product_option(item, _letter(start + i)) for i, item in enumerate(data.complementary_items)
                    ],
                    margin_bottom=16,
                ),
            ]

        payment_text = (
            "Circle your choices and fax back. We will charge your card on file and deliver in 2-3 days."
            if data.has_payment_method
            else "Circle your choices and fax back. We will contact you to arrange payment."
        )
        blocks.append(TextBlock(text=payment_text, font_size=BODY_SIZE, margin_bottom=12))
        if data.delivery_address:
            blocks.append(TextBlock(text=f"Delivery to: {data.delivery_address}", font_size=BODY_SIZE, margin_bottom=16))

        context_data = {
            "topic": f"Shopping: {data.products[0].name}",
            "status": "waiting_reply",
            "products": [product.model_dump() for product in data.products],
            "complementary_items": [item.model_dump() for item in data.complementary_items],
            "has_payment_method": data.has_payment_method,
        }
        return "Shopping Order Form", blocks, context_data

    def _confirmation(self, raw: Dict[str, Any], interpretation: Optional[InterpretationResult]) -> tuple:
        data = ConfirmationData.model_validate(raw)
        blocks: List[ContentBlock] = [
            self._title("CONFIRMATION"),
            TextBlock(text="COMPLETED", font_size=SECTION_SIZE, bold=True, margin_bottom=12),
            TextBlock(text=data.message, font_size=BODY_SIZE, margin_bottom=16),
        ]
        if data.order_id:
            blocks.append(TextBlock(text=f"Order ID: {data.order_id}", font_size=BODY_SIZE, bold=True, margin_bottom=8))
        if data.tracking_number:
            blocks.append(
                TextBlock(text=f"Tracking: {data.tracking_number}", font_size=BODY_SIZE, bold=True, margin_bottom=16)
            )
        if data.email_recipient:
            blocks.append(
                TextBlock(text=f"Sent to: {data.email_recipient}", font_size=BODY_SIZE, bold=True, margin_bottom=16)
            )
        context_data = {"topic": data.confirmation_type or "Confirmation", **data.model_dump(exclude_none=True)}
        return "Confirmation", blocks, context_data

    def _clarification(self, raw: Dict[str, Any], interpretation: Optional[InterpretationResult]) -> tuple:
        data = ClarificationData.model_validate(raw)
        question = data.question
        conversations = data.recent_conversations
        if interpretation is not None:
            question = question or interpretation.clarification_question
            conversations = conversations or interpretation.recent_conversations
        question = question or "We could not understand your fax. Please write your request again clearly."

        blocks: List[ContentBlock] = [
            self._title("CLARIFICATION NEEDED"),
            TextBlock(text=question, font_size=BODY_SIZE, margin_bottom=16),
        ]
        if data.required_info:
            blocks += [
                self._section("Please provide:"),
                TextBlock(text="\n".join(f"- {info}" for info in data.required_info), font_size=BODY_SIZE, margin_bottom=16),
            ]
        if conversations:
            blocks += [
                self._section("Recent conversations:"),
                TextBlock(
                    text="\n".join(
                        f"{conv.reference_id}: {conv.topic} ({conv.days_ago} days ago)" for conv in conversations
                    ),
                    font_size=BODY_SIZE,
                    margin_bottom=16,
                ),
            ]
        blocks += [self._section("Your response:"), BlankSpaceBlock(height=120, margin_bottom=16)]

        context_data = {
            "topic": "Clarification",
            "status": "waiting_reply",
            "question": question,
            "required_info": data.required_info,
            "recent_conversations": [conv.model_dump(mode="json") for conv in conversations],
        }
        return "Clarification Needed", blocks, context_data

    def _general_inquiry(self, raw: Dict[str, Any], interpretation: Optional[InterpretationResult]) -> tuple:
        data = GeneralInquiryData.model_validate(raw)
        blocks: List[ContentBlock] = [self._title("YOUR QUESTION ANSWERED")]
        if data.question:
            blocks.append(TextBlock(text=f"Q: {data.question}", font_size=BODY_SIZE, bold=True, margin_bottom=12))
        blocks.append(TextBlock(text=data.answer, font_size=BODY_SIZE, margin_bottom=16))
        for image in data.images:
            blocks.append(ImageBlock(url=image.url, caption=image.caption, margin_bottom=16))
        if data.related_topics:
            blocks += [
                self._section("Related topics you can ask about:"),
                TextBlock(text="\n".join(f"- {topic}" for topic in data.related_topics), font_size=BODY_SIZE),
            ]
        topic = data.question or (interpretation.extracted_text[:60] if interpretation else "") or "Question"
        context_data = {"topic": f"Q&A: {topic}", "question": data.question, "related_topics": data.related_topics}
        return "Q&A Response", blocks, context_data

    def _payment_barcode(self, raw: Dict[str, Any], interpretation: Optional[InterpretationResult]) -> tuple:
        data = PaymentBarcodeData.model_validate(raw)
        blocks: List[ContentBlock] = [
            self._title("CONVENIENCE STORE PAYMENT"),
            TextBlock(text=data.instructions, font_size=BODY_SIZE, margin_bottom=16),
        ]
        for slip in data.slips:
            amount = int(slip.amount) if float(slip.amount).is_integer() else slip.amount
            blocks.append(
                TextBlock(text=f"{slip.product_name} - {slip.currency}{amount}", font_size=BODY_SIZE, bold=True, margin_bottom=8)
            )
            blocks.append(BarcodeBlock(payload=slip.barcode_data, symbology=slip.symbology, width=600, height=120, margin_bottom=8))
            if slip.expires:
                blocks.append(TextBlock(text=f"Pay by: {slip.expires}", font_size=BODY_SIZE, margin_bottom=16))
        context_data = {
            "topic": f"Payment: {data.slips[0].product_name}",
            "slips": [slip.model_dump() for slip in data.slips],
        }
        return "Payment Barcode", blocks, context_data
