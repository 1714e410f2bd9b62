"""
Tests for the CSV and XLSX price list readers.
"""

from pathlib import Path

import openpyxl
import pytest

from pco_ingestion import CsvSourceAdapter, SourceAdapter, XlsxSourceAdapter, adapter_for
from pco_ingestion.adapters.csv_adapter import normalize_headers


def _write_xlsx(path: Path, rows: list[list]) -> Path:
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Offer"
    for row in rows:
        ws.append(row)
    wb.save(path)
    return path


class TestAdapterSelection:

    @pytest.mark.parametrize(
        "name, expected",
        [
            ("offer.csv", CsvSourceAdapter),
            ("offer.TXT", CsvSourceAdapter),
            ("offer.xlsx", XlsxSourceAdapter),
            ("offer.XLSM", XlsxSourceAdapter),
        ],
    )
    def test_by_suffix(self, name, expected):
        adapter = adapter_for(Path(name))
        assert isinstance(adapter, expected)
        assert isinstance(adapter, SourceAdapter)

    def test_unsupported_suffix(self):
        with pytest.raises(ValueError, match="Unsupported"):
            adapter_for(Path("offer.xls"))


class TestHeaders:

    def test_blank_and_duplicate_headers(self):
        assert normalize_headers([" Wine ", None, "Price", "Price", "", "Price"]) == [
            "Wine",
            "Column_2",
            "Price",
            "Price_1",
            "Column_5",
            "Price_2",
        ]

    def test_inner_whitespace_collapsed(self):
        assert normalize_headers(["UK  In-Bond\nPrice"]) == ["UK In-Bond Price"]


class TestCsvAdapter:

    def test_reads_rows_with_bom(self, tmp_path):
        path = tmp_path / "offer.csv"
        path.write_bytes(
            "\ufeffWine,Price,Vintage\r\nOpus One,3600,2018\r\n,,\r\nKrug,1450.50\r\n".encode("utf-8")
        )

        rows = list(CsvSourceAdapter().read(path, {}))

        assert rows == [
            {"Wine": "Opus One", "Price": "3600", "Vintage": "2018"},
            {"Wine": "Krug", "Price": "1450.50", "Vintage": ""},
        ]

    def test_delimiter_and_skip_rows(self, tmp_path):
        path = tmp_path / "offer.txt"
        path.write_text("Supplier offer March\nWine;Price\nSassicaia 2019;1800\n", encoding="utf-8")

        rows = list(CsvSourceAdapter().read(path, {"delimiter": ";", "skip_rows": 1}))

        assert rows == [{"Wine": "Sassicaia 2019", "Price": "1800"}]

    def test_preview(self, tmp_path):
        path = tmp_path / "offer.csv"
        lines = ["Wine,Price"] + [f"Wine {n},{100 + n}" for n in range(8)]
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")

        preview = CsvSourceAdapter().preview(path, {})

        assert preview.row_count == 8
        assert preview.columns == ("Wine", "Price")
        assert len(preview.sample_rows) == 5
        assert preview.sample_rows[0] == {"Wine": "Wine 0", "Price": "100"}
        assert preview.encoding == "utf-8-sig"
        assert preview.detected_delimiter == ","

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.csv"
        path.write_text("", encoding="utf-8")

        assert list(CsvSourceAdapter().read(path, {})) == []
        assert CsvSourceAdapter().preview(path, {}).columns == ()


class TestXlsxAdapter:

    def test_header_detected_below_title_rows(self, tmp_path):
        path = _write_xlsx(
            tmp_path / "offer.xlsx",
            [
                ["Cellar Door Wines"],
                ["Offer valid until 31 March"],
                [],
                ["Wine Name", "Vintage", "Price", "Case Size"],
                ["Opus One", 2018, 3600.0, "6x75cl"],
                [None, None, None, None],
                ["Krug Grande Cuvee", "NV", 1450.5, 6],
            ],
        )

        rows = list(XlsxSourceAdapter().read(path, {}))

        assert rows == [
            {"Wine Name": "Opus One", "Vintage": 2018, "Price": 3600, "Case Size": "6x75cl"},
            {"Wine Name": "Krug Grande Cuvee", "Vintage": "NV", "Price": 1450.5, "Case Size": 6},
        ]

    def test_explicit_header_row(self, tmp_path):
        path = _write_xlsx(
            tmp_path / "offer.xlsx",
            [
                ["ref", "item", "amount"],
                ["A1", "Petrus 2015", 5200],
            ],
        )

        rows = list(
            XlsxSourceAdapter().read(path, {"auto_detect_header": False, "header_row": 0})
        )

        assert rows == [{"ref": "A1", "item": "Petrus 2015", "amount": 5200}]

    def test_sheet_selected_by_name(self, tmp_path):
        path = tmp_path / "offer.xlsx"
        wb = openpyxl.Workbook()
        wb.active.append(["Cover sheet"])
        prices = wb.create_sheet("Prices")
        prices.append(["Product", "Price"])
        prices.append(["Tignanello 2020", 720])
        wb.save(path)

        by_name = list(XlsxSourceAdapter().read(path, {"sheet": "Prices"}))
        by_index = list(XlsxSourceAdapter().read(path, {"sheet": 1}))

        assert by_name == by_index == [{"Product": "Tignanello 2020", "Price": 720}]

    def test_preview(self, tmp_path):
        path = _write_xlsx(
            tmp_path / "offer.xlsx",
            [["Product", "Price"]] + [[f"Wine {n}", 100 + n] for n in range(7)],
        )

        preview = XlsxSourceAdapter().preview(path, {})

        assert preview.row_count == 7
        assert preview.columns == ("Product", "Price")
        assert len(preview.sample_rows) == 5
