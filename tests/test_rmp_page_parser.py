from bs4 import BeautifulSoup

from conftest import professor_html
from garnett.collectors.rmp_page_parser import (
    extract_policy_stats,
    extract_policy_stats_fallback,
    parse_professor_page,
    professor_id_from_url,
)

URL = "https://www.ratemyprofessors.com/professor/2619048"


def test_professor_id_from_url():
    assert professor_id_from_url(URL) == "2619048"
    assert professor_id_from_url(URL + "/") == "2619048"


def test_parse_professor_page():
    html = professor_html(
        name="Jane Smith",
        rating="4.5",
        num_ratings="42 ratings",
        would_take_again="85%",
        difficulty="2.1",
        tags=["Caring", "Clear grading criteria", "Caring"],
        attendance=["Mandatory", "Mandatory", "Not Mandatory"],
        textbook=["Yes"],
    )

    review = parse_professor_page(html, URL)

    assert review.id == "2619048"
    assert review.url == URL
    assert review.name == "Jane Smith"
    assert review.rating == "4.5"
    assert review.total_ratings == "42 ratings"
    assert review.would_take_again == "85%"
    assert review.difficulty == "2.1"
    assert review.top_tags == ["Caring", "Clear grading criteria"]
    assert review.attendance_stats == {"Mandatory": 2, "Not Mandatory": 1}
    assert review.textbook_stats == {"Yes": 1}


def test_missing_fields_default_to_not_available():
    review = parse_professor_page("<html><body><p>Page moved</p></body></html>", URL)

    assert review.name == "Professor 2619048"
    assert review.rating == "N/A"
    assert review.total_ratings == "N/A"
    assert review.would_take_again == "N/A"
    assert review.difficulty == "N/A"
    assert review.top_tags == []
    assert review.attendance_stats == {}
    assert review.textbook_stats == {}


def test_policy_stats_fall_back_to_raw_markup():
    # Metadata without the styled-components class names
    html = """
    <div class="Rating-new"><div>Attendance: <span>Mandatory</span></div>
    <div>Textbook: <span class="value">No</span></div></div>
    <div class="Rating-new"><div>Attendance: <span>Mandatory</span></div></div>
    """

    attendance, textbook = extract_policy_stats(BeautifulSoup(html, "html.parser"), html)

    assert attendance == {"Mandatory": 2}
    assert textbook == {"No": 1}


def test_fallback_not_used_when_structured_lookup_finds_data():
    html = professor_html(attendance=["Not Mandatory"]) + (
        "<div>Textbook: <span>Yes</span></div>"
    )

    attendance, textbook = extract_policy_stats(BeautifulSoup(html, "html.parser"), html)

    assert attendance == {"Not Mandatory": 1}
    # The unstructured textbook block is only seen by the fallback
    assert textbook == {}
    assert extract_policy_stats_fallback(html)[1] == {"Yes": 1}
