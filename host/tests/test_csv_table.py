import pytest

from scraper_host.errors import MalformedRow, TooFewRows
from scraper_host.etl import csv_table
from scraper_host.models import BusinessRecord

WORKER_HEADER = (
    "Name,Address,Phone Number,Email,Website,Rating,Total Ratings,"
    "Additional Numbers,Additional Emails,Social Media Links"
)


def test_normalize_header_variants():
    assert csv_table.normalize_header("Phone Number") == "phone_number"
    assert csv_table.normalize_header("  Total   Ratings ") == "total_ratings"
    assert csv_table.normalize_header("PhoneNumber") == "phonenumber"
    assert csv_table.normalize_header("E-mail (primary)") == "email_primary"


@pytest.mark.parametrize("header", ["Phone Number", "Social Media Links", "phone_number", "Rating (avg)"])
def test_normalize_header_is_idempotent(header):
    once = csv_table.normalize_header(header)
    assert csv_table.normalize_header(once) == once


def test_split_row_respects_quotes():
    assert csv_table.split_row('Acme, "12 Main St, Springfield" ,555') == [
        "Acme",
        "12 Main St, Springfield",
        "555",
    ]
    assert csv_table.split_row('"Say ""hi""",x') == ['Say "hi"', "x"]
    assert csv_table.split_row("a,,") == ["a", "", ""]


def test_parse_text_returns_one_row_per_data_line():
    text = "Name,Phone Number\n\nJoe's Pizza,555-1234\n   \nBob's Burgers,\n"

    rows = csv_table.parse_text(text)

    assert rows == [
        {"name": "Joe's Pizza", "phone_number": "555-1234"},
        {"name": "Bob's Burgers", "phone_number": ""},
    ]


def test_parse_text_pads_short_rows():
    rows = csv_table.parse_text("Name,Email,Website\nAcme")
    assert rows == [{"name": "Acme", "email": "", "website": ""}]


def test_parse_text_requires_a_data_row():
    with pytest.raises(TooFewRows):
        csv_table.parse_text("Name,Address\n")
    with pytest.raises(TooFewRows):
        csv_table.parse_text("")


def test_parse_text_rejects_header_without_columns():
    with pytest.raises(MalformedRow):
        csv_table.parse_text("!!!,???\nvalue,value")


def test_records_have_every_field_populated():
    text = f"{WORKER_HEADER}\nAcme,Main St,555,a@acme.com,https://acme.com,4.5,10,,,\nBeta,,,,,,,,,\n"

    records = csv_table.to_business_records(csv_table.parse_text(text))

    assert len(records) == 2
    for record in records:
        for name in BusinessRecord.field_names():
            assert isinstance(getattr(record, name), str)
    assert records[0].phone == "555"
    assert records[0].reviews == "10"
    assert records[1] == BusinessRecord(name="Beta")


def test_to_business_record_uses_first_non_empty_alias():
    record = csv_table.to_business_record({"name": "Acme", "phone_number": "", "phone": "777", "reviews": "3"})
    assert record.phone == "777"
    assert record.reviews == "3"
    assert record.email == ""


def test_extract_embedded_returns_interior_text():
    output = (
        "Searching for pizza in Austin\n"
        "--- CSV_DATA_START ---\n"
        "Name,Phone\nAcme,555\n"
        "--- CSV_DATA_END ---\n"
        "Done.\n"
    )
    assert csv_table.extract_embedded(output) == "Name,Phone\nAcme,555"


@pytest.mark.parametrize(
    "output",
    [
        "no markers at all",
        "--- CSV_DATA_START ---\nName\nAcme\n",
        "Name\nAcme\n--- CSV_DATA_END ---\n",
        "--- CSV_DATA_END ---\n--- CSV_DATA_START ---\nName\n",
    ],
)
def test_extract_embedded_without_both_markers(output):
    assert csv_table.extract_embedded(output) is None


def test_extract_table_tolerates_empty_block():
    assert csv_table.extract_table("--- CSV_DATA_START ---\n--- CSV_DATA_END ---") is None


def test_embedded_block_round_trip():
    records = [
        BusinessRecord(
            name="Joe's Pizza, Inc.",
            address="1 Main St, Austin, TX",
            phone="555-1234",
            email="joe@example.com",
            website="https://joes.example.com",
            rating="4.6",
            reviews="120",
            additional_numbers="555-0000; 555-1111",
            additional_emails="",
            social_media_links='https://fb.com/joes, "official"',
        ),
        BusinessRecord(name="Plain Cafe"),
    ]

    block = csv_table.format_embedded_block(records)
    parsed = csv_table.extract_table(f"log line\n{block}trailing log\n")

    assert parsed == records


def test_load_result_table_retries_until_file_appears(tmp_path):
    target = tmp_path / "results.csv"
    delays = []

    def fake_sleep(seconds):
        delays.append(seconds)
        if len(delays) == 2:
            target.write_text("Name,Phone Number\nAcme,555\n", encoding="utf-8")

    records = csv_table.load_result_table(target, attempts=3, delay=0.2, sleep=fake_sleep)

    assert records == [BusinessRecord(name="Acme", phone="555")]
    assert delays == [0.2, 0.4]


def test_load_result_table_gives_up_after_attempts(tmp_path):
    delays = []
    records = csv_table.load_result_table(tmp_path / "missing.csv", attempts=3, delay=0.2, sleep=delays.append)

    assert records is None
    assert delays == pytest.approx([0.2, 0.4, 0.6])
