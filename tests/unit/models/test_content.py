"""Unit tests for content blocks and documents."""

import pytest
from pydantic import ValidationError

from faxbridge.models.content import (
    BarcodeBlock,
    FooterBlock,
    ImageBlock,
    Option,
    OptionListBlock,
    TextBlock,
    parse_block,
)
from faxbridge.models.document import Document, Page


class TestContentBlocks:
    def test_parse_block_picks_variant_by_type(self):
        block = parse_block({"type": "option_list", "selection": "checkbox", "options": [{"label": "A", "description": "Tea"}]})

        assert isinstance(block, OptionListBlock)
        assert block.selection == "checkbox"
        assert block.options[0].label == "A"

    def test_parse_block_rejects_unknown_type(self):
        with pytest.raises(ValidationError):
            parse_block({"type": "table", "rows": []})

    def test_blocks_reject_fields_of_other_variants(self):
        with pytest.raises(ValidationError):
            parse_block({"type": "text", "text": "hi", "payload": "123"})

    def test_blocks_are_immutable(self):
        block = TextBlock(text="hello")

        with pytest.raises(ValidationError):
            block.text = "changed"

    def test_barcode_requires_payload(self):
        with pytest.raises(ValidationError):
            BarcodeBlock(payload="")

    def test_image_requires_data_or_url(self):
        with pytest.raises(ValidationError):
            ImageBlock()

        assert ImageBlock(url="https://example.com/a.png").data is None

    def test_negative_margins_rejected(self):
        with pytest.raises(ValidationError):
            TextBlock(text="x", margin_top=-1)


class TestOptionDisplayText:
    def test_without_price(self):
        assert Option(label="A", description="Reply yes").display_text() == "A. Reply yes"

    def test_integer_price_has_no_decimals(self):
        option = Option(label="B", description="Batteries", price=980.0)

        assert option.display_text() == "B. Batteries - ¥980"

    def test_fractional_price_and_currency(self):
        option = Option(label="C", description="Cable", price=12.5, currency="$")

        assert option.display_text() == "C. Cable - $12.5"


class TestDocumentValidation:
    def _page(self, number: int, footer: str = "Ref: FX-2025-000001") -> Page:
        return Page(content=[TextBlock(text="body"), FooterBlock(text=footer)], page_number=number, total_pages=2)

    def test_valid_document(self):
        document = Document(kind="confirmation", reference_id="FX-2025-000001", pages=[self._page(1), self._page(2)])

        assert document.total_pages == 2

    def test_requires_pages(self):
        with pytest.raises(ValidationError):
            Document(kind="confirmation", reference_id="FX-2025-000001", pages=[])

    def test_page_numbers_must_be_contiguous(self):
        with pytest.raises(ValidationError):
            Document(kind="confirmation", reference_id="FX-2025-000001", pages=[self._page(1), self._page(3)])

    def test_each_page_needs_exactly_one_footer(self):
        page = Page(content=[TextBlock(text="body")], page_number=1)

        with pytest.raises(ValidationError):
            Document(kind="confirmation", reference_id="FX-2025-000001", pages=[page])

    def test_footer_must_carry_reference_id(self):
        with pytest.raises(ValidationError):
            Document(kind="confirmation", reference_id="FX-2025-000001", pages=[self._page(1, footer="Thanks")])

    def test_footer_must_carry_support_contact_when_set(self):
        with pytest.raises(ValidationError):
            Document(
                kind="confirmation",
                reference_id="FX-2025-000001",
                pages=[self._page(1)],
                support_contact="Support: 0120-000-000",
            )

        document = Document(
            kind="confirmation",
            reference_id="FX-2025-000001",
            pages=[self._page(1, footer="Ref: FX-2025-000001 | Support: 0120-000-000")],
            support_contact="Support: 0120-000-000",
        )
        assert document.support_contact == "Support: 0120-000-000"
