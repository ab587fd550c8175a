"""Unit tests for document drafts built from agent responses."""

import uuid

import pytest

from faxbridge.core.exceptions import RenderError
from faxbridge.models.collaborators import AgentResponse, DocumentSpec, InterpretationResult, RecentConversation, UserRecord
from faxbridge.models.content import BarcodeBlock, BlankSpaceBlock, HeaderBlock, ImageBlock, OptionListBlock
from faxbridge.services.document_builder import BRANDING, WELCOME_OPTIONS, DocumentBuilder
from faxbridge.utils.reference_ids import is_reference_id

SUPPORT = "Support: 0120-000-000"


@pytest.fixture
def builder() -> DocumentBuilder:
    return DocumentBuilder(support_contact=SUPPORT)


def _response(kind: str, data: dict, reference_id: str = "FX-2025-000100", message: str = "") -> AgentResponse:
    return AgentResponse(
        success=True,
        document_spec=DocumentSpec(kind=kind, reference_id=reference_id, data=data),
        user_message=message,
    )


def _texts(draft):
    return [getattr(block, "text", None) for block in draft.blocks]


class TestDraftCommon:
    def test_header_and_footer(self, builder):
        draft = builder.build(_response("confirmation", {"message": "Email sent."}))

        assert isinstance(draft.blocks[0], HeaderBlock)
        assert draft.blocks[0].text == BRANDING
        assert draft.footer_text == f"Confirmation | Ref: FX-2025-000100 | {SUPPORT}"
        assert draft.context_data["kind"] == "confirmation"
        assert draft.support_contact == SUPPORT

    def test_malformed_reference_is_replaced(self, builder):
        draft = builder.build(_response("confirmation", {"message": "ok"}, reference_id="REF-1"))

        assert is_reference_id(draft.reference_id)
        assert draft.reference_id in draft.footer_text

    def test_unknown_kind_becomes_confirmation(self, builder):
        draft = builder.build(_response("weather_report", {"temp": 20}, message="It is sunny."))

        assert draft.kind == "confirmation"
        assert "It is sunny." in _texts(draft)

    def test_invalid_data_is_render_error(self, builder):
        with pytest.raises(RenderError):
            builder.build(_response("product_selection", {"products": []}))


class TestDocumentKinds:
    def test_email_reply_with_quick_replies(self, builder):
        draft = builder.build(
            _response(
                "email_reply",
                {
                    "from": "son@example.com",
                    "subject": "Dinner",
                    "body": "Are you free on Sunday?",
                    "thread_id": "t-1",
                    "quick_replies": ["Yes", "No"],
                },
            )
        )

        options = [block for block in draft.blocks if isinstance(block, OptionListBlock)][0]
        assert options.selection == "circle"
        assert [o.display_text() for o in options.options] == ["A. Yes", "B. No"]
        assert isinstance(draft.blocks[-1], BlankSpaceBlock)
        assert draft.context_data["thread_id"] == "t-1"
        assert draft.context_data["topic"] == "Email: Dinner"

    def test_product_selection_with_addons_and_images(self, builder):
        draft = builder.build(
            _response(
                "product_selection",
                {
                    "products": [
                        {"name": "AA Batteries", "price": 980, "image_url": "https://img.example.com/aa.png"},
                        {"name": "AAA Batteries", "price": 880},
                    ],
                    "complementary_items": [{"name": "Charger", "price": 2500}],
                    "show_images": True,
                },
            )
        )

        lists = [block for block in draft.blocks if isinstance(block, OptionListBlock)]
        assert lists[0].selection == "circle"
        assert [o.label for o in lists[0].options] == ["A", "B"]
        assert lists[1].selection == "checkbox"
        assert [o.label for o in lists[1].options] == ["C"]
        images = [block for block in draft.blocks if isinstance(block, ImageBlock)]
        assert [image.caption for image in images] == ["A. AA Batteries"]
        assert draft.footer_text.startswith("Shopping Order Form | Ref:")

    def test_clarification_uses_recovered_conversations(self, builder):
        interpretation = InterpretationResult(
            intent="reply",
            confidence=0.4,
            requires_clarification=True,
            clarification_question="Which request are you answering?",
            recent_conversations=[
                RecentConversation(context_id=uuid.uuid4(), reference_id="FX-2025-000011", topic="Shopping", days_ago=1)
            ],
        )

        draft = builder.build(_response("clarification", {}), interpretation)

        texts = _texts(draft)
        assert "Which request are you answering?" in texts
        assert "FX-2025-000011: Shopping (1 days ago)" in texts
        assert draft.context_data["status"] == "waiting_reply"

    def test_general_inquiry_with_image(self, builder):
        draft = builder.build(
            _response(
                "general_inquiry",
                {
                    "question": "How do I cook rice?",
                    "answer": "Rinse, soak, then simmer for 15 minutes.",
                    "images": [{"url": "https://img.example.com/rice.png", "caption": "Rice"}],
                    "related_topics": ["Miso soup"],
                },
            )
        )

        assert "Q: How do I cook rice?" in _texts(draft)
        assert any(isinstance(block, ImageBlock) and block.caption == "Rice" for block in draft.blocks)
        assert draft.context_data["topic"] == "Q&A: How do I cook rice?"

    def test_payment_barcode(self, builder):
        draft = builder.build(
            _response(
                "payment_barcode",
                {"slips": [{"product_name": "AA Batteries", "amount": 980, "barcode_data": "912345678901"}]},
            )
        )

        barcodes = [block for block in draft.blocks if isinstance(block, BarcodeBlock)]
        assert barcodes[0].payload == "912345678901"
        assert "AA Batteries - ¥980" in _texts(draft)


class TestOnboarding:
    def test_welcome_lists_help_topics(self, builder):
        user = UserRecord(id=uuid.uuid4(), phone_number="+819012345678", email_address="me@faxbridge.example.com")

        draft = builder.welcome(user)

        assert draft.kind == "welcome"
        assert draft.context_data["is_welcome"] is True
        assert "me@faxbridge.example.com" in _texts(draft)
        options = [block for block in draft.blocks if isinstance(block, OptionListBlock)][0]
        assert [o.label for o in options.options] == list(WELCOME_OPTIONS)

    @pytest.mark.parametrize("topic", [topic for topic, _ in WELCOME_OPTIONS.values()])
    def test_help_for_every_welcome_topic(self, builder, topic):
        draft = builder.help(topic)

        assert draft.kind == "help"
        assert draft.context_data["help_topic"] == topic
        assert draft.footer_text.startswith("Help Guide | Ref:")

    def test_unknown_help_topic(self, builder):
        with pytest.raises(RenderError):
            builder.help("gardening")
