"""
Tests for click classification and geo lookup.
"""
from datetime import datetime, timezone

from shortlink_app.services.click_classifier import (
    ClickClassifier,
    RequestMeta,
    extract_utm,
)
from shortlink_app.services.geo import (
    MOCK_LOCATIONS,
    GeoLocation,
    GeoLookupStrategy,
    MockPrivateGeoLookup,
    NullGeoLookup,
    build_geo_lookup,
    is_private_address,
)

IPHONE_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)
IPAD_UA = (
    "Mozilla/5.0 (iPad; CPU OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)
DESKTOP_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
GOOGLEBOT_UA = "Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)"


class FixedGeo(GeoLookupStrategy):
    def __init__(self):
        self.seen = []

    def lookup(self, ip_address):
        self.seen.append(ip_address)
        return GeoLocation("DE", "Berlin")


def classify(classifier, meta, destination="https://d.example/page"):
    return classifier.classify(meta, destination, short_code="2bj", link_id=1)


class TestClassify:
    """Test derived click metadata"""

    def test_desktop_browser(self, classifier):
        event = classify(classifier, RequestMeta(user_agent=DESKTOP_UA)).event

        assert event.browser == "Chrome"
        assert event.os == "Windows"
        assert event.device_type == "desktop"
        assert event.is_bot is False

    def test_mobile_and_tablet(self, classifier):
        assert classify(classifier, RequestMeta(user_agent=IPHONE_UA)).event.device_type == "mobile"
        assert classify(classifier, RequestMeta(user_agent=IPAD_UA)).event.device_type == "tablet"

    def test_empty_user_agent(self, classifier):
        event = classify(classifier, RequestMeta()).event

        assert event.device_type == "desktop"
        assert event.browser == "Unknown"
        assert event.user_agent is None

    def test_bot_detection_is_case_insensitive(self, classifier):
        assert classify(classifier, RequestMeta(user_agent=GOOGLEBOT_UA)).event.is_bot is True
        assert classify(classifier, RequestMeta(user_agent="Some-CRAWLER/1.0")).event.is_bot is True
        assert classify(classifier, RequestMeta(user_agent="WebSpider")).event.is_bot is True

    def test_referrer_defaults_to_direct(self, classifier):
        assert classify(classifier, RequestMeta()).event.referrer == "Direct"
        assert classify(classifier, RequestMeta(referrer="https://t.co/")).event.referrer == "https://t.co/"

    def test_first_forwarded_for_entry_wins(self):
        geo = FixedGeo()
        classifier = ClickClassifier(geo)
        meta = RequestMeta(forwarded_for="203.0.113.7, 10.0.0.1", peer_address="10.0.0.2")

        event = classify(classifier, meta).event

        assert event.ip_address == "203.0.113.7"
        assert geo.seen == ["203.0.113.7"]
        assert (event.country, event.city) == ("DE", "Berlin")

    def test_peer_address_without_forwarding(self, classifier):
        assert classify(classifier, RequestMeta(peer_address="198.51.100.1")).event.ip_address == "198.51.100.1"

    def test_utm_fields_from_destination(self, classifier):
        destination = "https://d.example/page?utm_source=newsletter&utm_medium=email"

        event = classify(classifier, RequestMeta(), destination).event

        assert event.utm_source == "newsletter"
        assert event.utm_medium == "email"
        assert event.utm_campaign is None

    def test_timestamp_passthrough(self, classifier):
        now = datetime(2025, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        event = classifier.classify(RequestMeta(), "https://d.example", "2bj", 1, now=now).event
        assert event.timestamp == now


class TestVisitorCookie:
    """Test uniqueness via the per-link visitor cookie"""

    def test_first_visit_is_unique_and_issues_cookie(self, classifier):
        result = classify(classifier, RequestMeta(user_agent=DESKTOP_UA))

        assert result.event.is_unique is True
        assert result.cookie is not None
        assert result.cookie.name == "_vid_2bj"
        assert result.cookie.value == result.event.visitor_id
        assert result.cookie.max_age == 365 * 24 * 60 * 60

    def test_returning_visitor_is_not_unique(self, classifier):
        first = classify(classifier, RequestMeta(user_agent=DESKTOP_UA))
        cookies = {first.cookie.name: first.cookie.value}

        second = classify(classifier, RequestMeta(user_agent=DESKTOP_UA, cookies=cookies))

        assert second.event.is_unique is False
        assert second.event.visitor_id == first.event.visitor_id
        assert second.cookie is None

    def test_malformed_cookie_is_reissued(self, classifier):
        result = classify(classifier, RequestMeta(cookies={"_vid_2bj": "tampered"}))

        assert result.event.is_unique is True
        assert result.cookie.value != "tampered"

    def test_cookie_is_per_link(self, classifier):
        first = classify(classifier, RequestMeta())
        other = classifier.classify(
            RequestMeta(cookies={first.cookie.name: first.cookie.value}),
            "https://d.example", short_code="other", link_id=2,
        )
        assert other.event.is_unique is True


class TestGeo:
    """Test geo lookup strategies"""

    def test_private_addresses(self):
        assert is_private_address("127.0.0.1")
        assert is_private_address("192.168.1.10")
        assert is_private_address("::1")
        assert is_private_address("::ffff:10.0.0.1")
        assert not is_private_address("8.8.8.8")
        assert not is_private_address("not-an-ip")
        assert not is_private_address(None)

    def test_mock_maps_private_to_known_locations(self):
        lookup = MockPrivateGeoLookup(NullGeoLookup(), choose=lambda options: options[0])

        assert lookup.lookup("127.0.0.1") == MOCK_LOCATIONS[0][1]
        assert lookup.lookup("8.8.4.4") == GeoLocation()

    def test_build_without_database(self):
        assert isinstance(build_geo_lookup(None, mock_private_ips=False), NullGeoLookup)
        assert isinstance(build_geo_lookup(None, mock_private_ips=True), MockPrivateGeoLookup)

    def test_build_with_missing_database_degrades(self, tmp_path):
        lookup = build_geo_lookup(str(tmp_path / "missing.mmdb"), mock_private_ips=False)
        assert lookup.lookup("8.8.8.8") == GeoLocation()


def test_extract_utm_absent_is_none():
    assert extract_utm("https://d.example/") == {
        "utm_source": None,
        "utm_medium": None,
        "utm_campaign": None,
        "utm_term": None,
        "utm_content": None,
    }
