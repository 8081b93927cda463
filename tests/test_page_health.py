"""Tests for the page-load health check."""

import pytest
import yaml

from price_warden.health import check_page, critical_errors, load_known_issues

from .conftest import BASE_URL, FakeTab


@pytest.fixture
def site(make_site):
    site, document = make_site(FakeTab("Individuals", []))
    site.console = [
        "Failed to load resource: favicon.ico 404",
        "Uncaught TypeError: cannot read properties of undefined",
    ]
    site.links = [
        "https://shop.example.com/uk/ok.html",
        "https://shop.example.com/uk/ok.html",
        "https://shop.example.com/uk/missing.html",
        "https://shop.example.com/uk/legacy/old-promo.html",
        "https://offline.example.com/",
        "tel:+441234567",
        "mailto:sales@example.com",
        "https://shop.example.com/uk/plans.html#open-jarvis-chat",
    ]
    site.link_status = {
        "https://shop.example.com/uk/missing.html": 404,
        "https://shop.example.com/uk/legacy/old-promo.html": 404,
        "https://offline.example.com/": None,
    }
    return site, document


class TestCriticalErrors:
    def test_ignored_patterns_are_case_insensitive(self):
        errors = ["GET /FAVICON.ico failed", "Google Analytics blocked", "ReferenceError: x"]
        assert critical_errors(errors, ["favicon", "analytics"]) == ["ReferenceError: x"]


class TestKnownIssues:
    def test_wildcards(self, tmp_path):
        path = tmp_path / "known.yml"
        path.write_text(yaml.safe_dump({BASE_URL: ["404 https://shop.example.com/uk/legacy/*"]}))

        patterns = load_known_issues(path, BASE_URL)
        assert patterns[0].match("404 https://shop.example.com/uk/legacy/old-promo.html")
        assert not patterns[0].match("404 https://shop.example.com/uk/missing.html")

    def test_other_page_has_none(self, tmp_path):
        path = tmp_path / "known.yml"
        path.write_text(yaml.safe_dump({BASE_URL: ["404 *"]}))
        assert load_known_issues(path, "https://shop.example.com/fr/plans.html") == []

    def test_missing_file(self, tmp_path):
        assert load_known_issues(tmp_path / "nope.yml", BASE_URL) == []


class TestCheckPage:
    async def test_reports_broken_links_and_errors(self, site, config):
        site, document = site

        health = await check_page(document, BASE_URL, config)

        assert health.status == 200
        assert health.critical_errors == ["Uncaught TypeError: cannot read properties of undefined"]
        assert [link.url for link in health.links] == [
            "https://offline.example.com/",
            "https://shop.example.com/uk/legacy/old-promo.html",
            "https://shop.example.com/uk/missing.html",
            "https://shop.example.com/uk/ok.html",
        ]
        assert health.valid_links == 1
        assert [str(link) for link in health.unreachable] == [
            "999 https://offline.example.com/ no errorcode, offline?"
        ]
        assert [link.url for link in health.broken] == [
            "https://shop.example.com/uk/legacy/old-promo.html",
            "https://shop.example.com/uk/missing.html",
        ]
        assert not health.passed

    async def test_known_issues_are_filtered(self, site, config, tmp_path):
        site, document = site
        known = tmp_path / "known.yml"
        known.write_text(yaml.safe_dump({BASE_URL: [
            "404 https://shop.example.com/uk/legacy/*",
            "404 https://shop.example.com/uk/missing.html",
        ]}))
        config.page_health.known_issues_file = known

        health = await check_page(document, BASE_URL, config)

        assert health.broken == []
        assert health.known_issues_filtered == 2
        # One critical console error is within the default allowance
        assert health.passed

    async def test_too_many_console_errors(self, site, config):
        site, document = site
        site.links = []
        site.console = [f"Uncaught Error {i}" for i in range(3)]

        health = await check_page(document, BASE_URL, config)

        assert len(health.critical_errors) == 3
        assert not health.passed

    async def test_error_status_fails(self, site, config):
        site, document = site
        site.links = []
        site.status = 500

        health = await check_page(document, BASE_URL, config)

        assert health.status == 500
        assert not health.passed
