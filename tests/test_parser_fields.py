"""
Tests for the per-field scanners of ReceiptParser.
"""

from decimal import Decimal

import pytest

from receipt_extraction.services.parser import ReceiptParser
from receipt_extraction.utils.patterns import PatternSpec


@pytest.fixture
def parser():
    return ReceiptParser()


class TestAmountExtraction:
    """Amount rules, context adjustments and currency resolution."""

    def test_labeled_total_with_symbol(self, parser):
        amount, currency, confidence = parser.extract_amount("Total: $1.234,56")
        assert amount == Decimal("1234.56"), f"Expected 1234.56, got {amount}"
        assert currency == "$"
        assert confidence >= 0.95, f"Confidence too low: {confidence}"

    def test_small_value_penalty(self, parser):
        amount, currency, confidence = parser.extract_amount("0.05")
        assert amount == Decimal("0.05")
        assert confidence <= 0.4, f"Small amount should be penalized, got {confidence}"
        assert confidence == pytest.approx(0.35)

    def test_amount_then_currency(self, parser):
        amount, currency, _ = parser.extract_amount("Pagado 1.234,56 €")
        assert amount == Decimal("1234.56")
        assert currency == "€"

    def test_defaults_to_usd(self, parser):
        amount, currency, confidence = parser.extract_amount("Importe 250")
        assert amount == Decimal("250")
        assert currency == "USD"
        assert confidence == pytest.approx(1.0)

    def test_currency_borrowed_from_runner_up(self, parser):
        # 500 wins the tie on size but has no symbol of its own
        amount, currency, _ = parser.extract_amount("Total 500 Propina $5")
        assert amount == Decimal("500")
        assert currency == "$"

    def test_date_numbers_are_not_amounts(self, parser):
        amount, _, _ = parser.extract_amount("Fecha 15/01/2025 Total $42.00")
        assert amount == Decimal("42.00"), f"Picked a piece of the date: {amount}"

    def test_label_inside_match_counts_as_total_context(self, parser):
        candidates = parser.propose_amount_candidates("Suma 20")
        labeled = [c for c in candidates if c.pattern_name == "labeled_total"]
        assert labeled, "Expected a labeled_total candidate"
        assert labeled[0].near_total_keyword

        _, _, confidence = parser.extract_amount("Suma 20")
        assert confidence == pytest.approx(1.0)

    def test_nothing_found(self, parser):
        assert parser.extract_amount("sin importes aqui") == (None, None, 0.0)

    def test_zero_is_discarded(self, parser):
        assert parser.extract_amount("0") == (None, None, 0.0)

    def test_candidates_are_positive(self, parser):
        candidates = parser.propose_amount_candidates("Total: $150.00 cambio 0")
        assert candidates, "Expected at least one candidate"
        assert all(c.value > 0 for c in candidates)
        assert candidates[0].pattern_name == "currency_prefix"


class TestDateExtraction:
    """Date families, calendar validation and day/month ordering."""

    def test_spanish_month_name(self, parser):
        assert parser.extract_date("15 enero 2025") == ("2025-01-15", 0.9)

    def test_spanish_long_form(self, parser):
        date, _ = parser.extract_date("Emitido el 3 de marzo de 2024")
        assert date == "2024-03-03"

    def test_english_month_first(self, parser):
        date, _ = parser.extract_date("Date: January 15, 2025")
        assert date == "2025-01-15"

    def test_invalid_calendar_date(self, parser):
        assert parser.extract_date("32/13/2025") == (None, 0.0)

    def test_day_greater_than_twelve(self, parser):
        date, confidence = parser.extract_date("15/01/2025")
        assert date == "2025-01-15"
        assert confidence == 0.9

    def test_ambiguous_is_month_first(self, parser):
        assert parser.extract_date("01/15/2025")[0] == "2025-01-15"
        assert parser.extract_date("03/04/2025")[0] == "2025-03-04"

    def test_day_first_hint(self, parser):
        assert parser.extract_date("03/04/2025", day_first=True)[0] == "2025-04-03"

    def test_year_month_day(self, parser):
        assert parser.extract_date("2025-01-15 10:32")[0] == "2025-01-15"

    def test_invalid_match_skipped(self, parser):
        # First slash date is impossible, the second one is used
        date, _ = parser.extract_date("Vence 31/02/2025 Emitido 28/02/2025")
        assert date == "2025-02-28"

    def test_leap_day(self, parser):
        assert parser.extract_date("29/02/2024")[0] == "2024-02-29"
        assert parser.extract_date("29/02/2023") == (None, 0.0)

    def test_year_out_of_range(self, parser):
        assert parser.extract_date("15/01/1899") == (None, 0.0)


class TestProviderExtraction:
    """Provider rules and rejection filters."""

    def test_business_suffix(self, parser):
        provider, confidence = parser.extract_provider("Supermercado ABC S.A. - Total: $150.00")
        assert provider == "Supermercado ABC S.A."
        assert confidence == 0.9

    def test_labeled_provider(self, parser):
        provider, confidence = parser.extract_provider("Razón Social: Distribuidora Norte")
        assert provider == "Distribuidora Norte"
        assert confidence == 0.85

    def test_stop_words_rejected(self, parser):
        assert parser.extract_provider("Pago Store") == (None, 0.0)

    def test_no_provider(self, parser):
        assert parser.extract_provider("12345 67.89") == (None, 0.0)

    def test_before_receipt_noun(self, parser):
        assert parser.extract_provider("Libreria Sol factura") == ("Libreria Sol", 0.8)

    def test_before_address(self, parser):
        assert parser.extract_provider("Ferreteria Lopez Calle 5") == ("Ferreteria Lopez", 0.7)

    def test_too_long_rejected(self, parser):
        long_name = "Distribuidora Internacional de Alimentos Norte Company"
        assert len(long_name) > 50
        candidates = parser.propose_provider_candidates(long_name)
        assert not any(c.pattern_name == "business_suffix" for c in candidates)
        assert all(len(c.value) <= 50 for c in candidates)

        short = parser.propose_provider_candidates("Distribuidora Norte Company")
        assert [c.value for c in short if c.pattern_name == "business_suffix"] == ["Distribuidora Norte Company"]

    def test_short_names_with_digits_rejected(self):
        class CodeParser(ReceiptParser):
            provider_patterns = (
                PatternSpec(
                    name="store_code",
                    pattern=r"\b([A-Z]{2}\d{2,3}(?: [A-Za-z]+)?)",
                    example="AB123 Mercado",
                    confidence=0.9,
                ),
            )

        code_parser = CodeParser()
        assert code_parser.extract_provider("AB12") == (None, 0.0)
        assert code_parser.extract_provider("AB123 Mercado") == ("AB123 Mercado", 0.9)

    def test_long_single_line(self, parser):
        provider, _ = parser.extract_provider("Palabra " * 3000 + "Tienda Sol Store")
        assert provider is None or len(provider) <= 50

    def test_highest_confidence_wins(self, parser):
        provider, _ = parser.extract_provider("Panaderia Central\nCafe Sol Ltd")
        assert provider == "Cafe Sol Ltd", f"Suffix rule should beat the generic phrase, got {provider!r}"


class TestDescriptionExtraction:
    """Description rules, filters and fallbacks."""

    def test_labeled_item_with_purchase_bonus(self, parser):
        description, confidence = parser.extract_description("Concepto: Servicio de limpieza")
        assert description == "Servicio de limpieza"
        assert confidence == pytest.approx(1.0)

    def test_generic_phrase(self, parser):
        description, confidence = parser.extract_description("Compra de alimentos")
        assert description == "Compra de alimentos"
        assert confidence == pytest.approx(0.7)

    def test_item_line(self, parser):
        assert parser.extract_description("2 Leche entera 3.50") == ("Leche entera", 0.8)

    def test_stop_word_rejected(self, parser):
        assert parser.extract_description("Descuento por volumen aplicado") == ("Gasto registrado", 0.3)

    def test_too_long_rejected(self):
        class NoteParser(ReceiptParser):
            description_patterns = (
                PatternSpec(
                    name="note",
                    pattern=r"Nota: (.+)",
                    example="Nota: pan integral",
                    confidence=0.9,
                ),
            )

        note_parser = NoteParser()
        assert note_parser.extract_description("Nota: pan integral") == ("pan integral", 0.9)
        assert note_parser.extract_description("Nota: " + "pan " * 30) == ("Gasto registrado", 0.3)

    def test_proper_name_rejected(self, parser):
        assert parser.extract_description("Juan Perez") == ("Gasto registrado", 0.3)

    def test_provider_fallback(self, parser):
        assert parser.extract_description("12345", provider="Tienda Luna") == ("Compra en Tienda Luna", 0.5)

    def test_generic_fallback(self, parser):
        assert parser.extract_description("12345") == ("Gasto registrado", 0.3)

    def test_provider_not_repeated(self, parser):
        description, _ = parser.extract_description(
            "Compra en Tienda Luna", provider="Tienda Luna"
        )
        assert description == "Compra en Tienda Luna"

    def test_never_absent(self, parser):
        description, confidence = parser.extract_description("")
        assert description
        assert confidence > 0
