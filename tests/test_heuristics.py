from datetime import timedelta

from conftest import T0

from jobfeed.heuristics import (
    company_from_hn,
    contains_word,
    extract_company,
    extract_job_title,
    extract_location,
    extract_min_salary,
    extract_salary,
    format_salary_range,
    is_job_posting,
    location_from_hn,
    normalize_employment_type,
    parse_posted_ago,
    parse_salary_range,
)
from jobfeed.models import SalaryRange, SearchHit


def test_format_salary_range():
    assert format_salary_range(80000, 120000) == "$80k-$120k"
    assert format_salary_range(80000, None) == "$80k+"
    assert format_salary_range(None, 120000) == "Up to $120k"
    assert format_salary_range(None, None) is None


def test_extract_min_salary_handles_commas_and_k():
    assert extract_min_salary("$95,000 - $120,000") == 95000
    assert extract_min_salary("$80k-$120k") == 80000
    assert extract_min_salary("Competitive") is None
    assert extract_min_salary(None) is None


def test_parse_salary_range():
    assert parse_salary_range("$80k-$120k") == SalaryRange(80000, 120000)
    assert parse_salary_range("Up to $150k") == SalaryRange(maximum=150000)
    assert parse_salary_range("$90,000+") == SalaryRange(minimum=90000)
    assert parse_salary_range("DOE") is None


def test_normalize_employment_type_closed_vocabulary():
    assert normalize_employment_type("FULLTIME") == "Full-time"
    assert normalize_employment_type("part_time") == "Part-time"
    assert normalize_employment_type("CONTRACTOR") == "Contract"
    assert normalize_employment_type("INTERN") == "Internship"
    assert normalize_employment_type("volunteer") is None
    assert normalize_employment_type(None) is None


def test_contains_word_respects_boundaries():
    assert contains_word("Senior Product Manager", "product")
    assert not contains_word("Productivity Lead", "product")


def test_snippet_extraction():
    snippet = "Join us in San Francisco, CA. Salary $120,000 - $150,000 per year."
    assert extract_location(snippet) == "San Francisco, CA"
    assert extract_salary(snippet) == "$120,000 - $150,000"
    assert extract_location("Fully remote role for engineers") == "Remote"
    assert extract_location("no place here") is None


def test_extract_job_title_strips_site_suffix():
    assert extract_job_title("Product Manager - Stripe") == "Product Manager"
    assert extract_job_title("Data Engineer | Careers") == "Data Engineer"
    assert extract_job_title("") is None


def test_extract_company():
    assert extract_company("Job Application for Product Manager at Stripe") == "Stripe"
    assert extract_company("Product Manager - Stripe") == "Stripe"
    assert extract_company("Product Manager") is None


def test_is_job_posting_requires_indicator_and_subject():
    hit = SearchHit("Product Manager - Stripe", "Stripe is hiring a product manager", "https://x/jobs/1")
    assert is_job_posting(hit, "Stripe", [])
    blog = SearchHit("Stripe engineering blog", "How we scale payments", "https://stripe.com/blog")
    assert not is_job_posting(blog, "Stripe", [])
    other = SearchHit("Open role: Data Scientist", "Great team", "https://x/careers/2")
    assert not is_job_posting(other, "Stripe", ["Product Manager"])
    assert is_job_posting(other, None, ["data scientist"])


def test_hacker_news_parsing():
    assert company_from_hn("Acme Robotics is hiring engineers") == "Acme Robotics"
    assert company_from_hn("Foo (YC W21) - Backend") == "Foo"
    assert location_from_hn("Acme | Berlin | Onsite", []) == "Berlin"
    assert location_from_hn("Acme | REMOTE | Full-time", []) == "Remote"
    assert location_from_hn("Acme hiring in Toronto", ["Toronto"]) == "Toronto"
    assert location_from_hn("", []) == "Unknown"


def test_parse_posted_ago():
    assert parse_posted_ago("3 days ago", T0) == T0 - timedelta(days=3)
    assert parse_posted_ago("just posted", T0) == T0
    assert parse_posted_ago("yesterday-ish", T0) is None
