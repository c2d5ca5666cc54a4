"""Tests for the server-side fetch guard on provider output URLs."""

import pytest

from sigil.services.storage.url_safety import is_private_host, safe_fetch_url


@pytest.mark.parametrize(
    "url",
    [
        "https://replicate.delivery/pbxt/abc/out.png",
        "https://fal.media/files/out.png",
        "https://storage.googleapis.com/bucket/out.png",
        "https://proj.supabase.co/storage/v1/object/public/outputs/a.png",
    ],
)
def test_allowlisted_https_urls(url):
    assert safe_fetch_url(url) == url


@pytest.mark.parametrize(
    "url",
    [
        "",
        "   ",
        "http://replicate.delivery/out.png",
        "ftp://replicate.delivery/out.png",
        "https://evil.example/out.png",
        "https://replicate.delivery.evil.example/out.png",
        "https://localhost/out.png",
        "https://127.0.0.1/out.png",
        "https://10.0.0.5/out.png",
        "https://[::1]/out.png",
        "data:image/png;base64,AAAA",
        "gs://bucket/out.png",
    ],
)
def test_rejected_urls(url):
    assert safe_fetch_url(url) is None


def test_gs_rewritten_when_allowed():
    assert (
        safe_fetch_url("gs://bucket/videos/v.mp4", allow_gs=True)
        == "https://storage.googleapis.com/bucket/videos/v.mp4"
    )
    assert safe_fetch_url("gs://", allow_gs=True) is None
    assert safe_fetch_url("gs://" + "b" * 201 + "/x", allow_gs=True) is None


@pytest.mark.parametrize(
    ("host", "private"),
    [
        ("localhost", True),
        ("127.0.0.1", True),
        ("172.16.4.1", True),
        ("192.168.1.1", True),
        ("169.254.169.254", True),
        ("0.0.0.0", True),
        ("fe80::1", True),
        ("::ffff:127.0.0.1", True),
        ("8.8.8.8", False),
        ("replicate.delivery", False),
    ],
)
def test_is_private_host(host, private):
    assert is_private_host(host) is private
