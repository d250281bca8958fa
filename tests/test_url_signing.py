"""Tests for signed artifact download tokens."""

from podpdf.core.url_signing import create_download_token, verify_download_token

SECRET = "test-secret"


class TestDownloadTokens:

    def test_round_trip(self):
        token = create_download_token("job-1.pdf", SECRET, expires_in=3600, now=1000.0)
        grant = verify_download_token(token, "job-1.pdf", SECRET, now=2000.0)
        assert grant is not None
        assert grant.key == "job-1.pdf"
        assert int(grant.exp.timestamp()) == 4600

    def test_expired(self):
        token = create_download_token("job-1.pdf", SECRET, expires_in=60, now=1000.0)
        assert verify_download_token(token, "job-1.pdf", SECRET, now=1061.0) is None

    def test_wrong_key(self):
        token = create_download_token("job-1.pdf", SECRET, now=1000.0)
        assert verify_download_token(token, "job-2.pdf", SECRET, now=1000.0) is None

    def test_wrong_secret(self):
        token = create_download_token("job-1.pdf", SECRET, now=1000.0)
        assert verify_download_token(token, "job-1.pdf", "other", now=1000.0) is None

    def test_tampered_payload(self):
        token = create_download_token("job-1.pdf", SECRET, now=1000.0)
        body, sig = token.split(".")
        forged = body[:-2] + ("AA" if body[-2:] != "AA" else "BB") + "." + sig
        assert verify_download_token(forged, "job-1.pdf", SECRET, now=1000.0) is None

    def test_garbage(self):
        assert verify_download_token("not-a-token", "job-1.pdf", SECRET) is None
        assert verify_download_token("a.b.c", "job-1.pdf", SECRET) is None
        assert verify_download_token("", "job-1.pdf", SECRET) is None
