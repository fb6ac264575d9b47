import httpx
import pytest

from errors import BadTarget
from target import authority, extract_target_url, origin, parse_url


class TestExtractTargetUrl:
    def test_absolute_https_url(self):
        url = extract_target_url(b"/https://example.com/foo")
        assert url == httpx.URL("https://example.com/foo")

    def test_absolute_http_url(self):
        url = extract_target_url(b"/http://127.0.0.1:9000/echo")
        assert url.scheme == "http"
        assert url.port == 9000

    @pytest.mark.parametrize(
        "raw_path",
        [b"/example.com/", b"/example.com/a/b", b"/example.com:8443/x"],
    )
    def test_defaults_to_https(self, raw_path):
        assert extract_target_url(raw_path).scheme == "https"

    def test_scheme_prefix_is_case_sensitive(self):
        # "HTTP://x" is not a scheme prefix, so it becomes the host part of an https URL
        url = extract_target_url(b"/HTTP://example.com/")
        assert url.scheme == "https"
        assert url.host == "http"

    def test_only_one_leading_slash_is_stripped(self):
        url = extract_target_url(b"https://example.com/")
        assert url == httpx.URL("https://example.com/")

    def test_trailing_slash_and_empty_path_are_kept(self):
        assert extract_target_url(b"/https://example.com/dir/").raw_path == b"/dir/"
        assert extract_target_url(b"/https://example.com").raw_path == b"/"

    def test_query_is_appended(self):
        url = extract_target_url(b"/example.com/path", b"q=1&r=2")
        assert str(url) == "https://example.com/path?q=1&r=2"

    @pytest.mark.parametrize(
        "raw_path",
        [b"/", b"/ht!tp://x", b"/example.com:abc/", b"/https://", b"/\xff\xfe"],
    )
    def test_invalid_targets(self, raw_path):
        with pytest.raises(BadTarget):
            extract_target_url(raw_path)


class TestParseUrl:
    def test_rejects_other_schemes(self):
        with pytest.raises(BadTarget):
            parse_url("ftp://example.com/")

    def test_accepts_ip_literals(self):
        assert parse_url("http://[::1]:8080/").host == "::1"
        assert parse_url("http://10.0.0.1/").host == "10.0.0.1"

    def test_accepts_international_names(self):
        url = parse_url("https://bücher.example/")
        assert url.raw_host == b"xn--bcher-kva.example"


class TestOrigins:
    def test_authority_without_port(self):
        assert authority(httpx.URL("https://example.com/")) == "example.com"

    def test_default_port_is_omitted(self):
        assert authority(httpx.URL("https://example.com:443/")) == "example.com"

    def test_authority_with_port(self):
        assert authority(httpx.URL("https://example.com:8443/")) == "example.com:8443"

    def test_ipv6_authority_is_bracketed(self):
        assert authority(httpx.URL("http://[::1]:8080/")) == "[::1]:8080"

    def test_origin(self):
        assert origin(httpx.URL("http://example.com:8080/a?b=c")) == "http://example.com:8080"
