"""Tests for single-object operations against the fake service."""

import httpx
import pytest

from osscmd.client import (
    OssClient,
    check_header_values,
    disposition_header,
    guess_content_type,
    local_file_size,
    raise_for_status,
    resolve_key,
)
from osscmd.errors import (
    CompletionError,
    InitError,
    LocalIOError,
    StatusError,
    UnauthorizedError,
    UsageError,
)
from osscmd.models import ClientConfig, HttpResult, UploadSession
from osscmd.responses import build_complete_manifest


class TestHelpers:
    """Tests for module-level helpers."""

    def test_guess_content_type(self):
        assert guess_content_type("index.html") == "text/html"
        assert guess_content_type("no-extension") is None

    def test_disposition_header(self):
        assert disposition_header("a.txt") == 'attachment; filename="a.txt"'

    def test_disposition_header_non_ascii(self):
        value = disposition_header("文档.txt")
        assert value == (
            "attachment; filename=\"__.txt\"; "
            "filename*=UTF-8''%E6%96%87%E6%A1%A3.txt"
        )
        assert value.isascii()

    def test_disposition_header_escapes_quotes(self):
        assert disposition_header('a"b.txt').startswith('attachment; filename="a_b.txt"; filename*=')

    def test_check_header_values(self):
        check_header_values({"x-oss-meta-a": "plain"})
        with pytest.raises(UsageError, match="x-oss-meta-owner"):
            check_header_values({"x-oss-meta-owner": "张三"})

    @pytest.mark.parametrize("key,source,expected", [
        ("", "/tmp/data/file.bin", "file.bin"),
        ("dir/", "/tmp/data/file.bin", "dir/file.bin"),
        ("exact/name.bin", "/tmp/data/file.bin", "exact/name.bin"),
        ("", "other/dir/key.txt", "key.txt"),
    ])
    def test_resolve_key(self, key, source, expected):
        assert resolve_key(key, source) == expected

    def test_raise_for_status_accepts_expected(self):
        raise_for_status(HttpResult(206), 200, 206)

    def test_raise_for_status_any_2xx_by_default(self):
        raise_for_status(HttpResult(204))

    def test_raise_for_status_parses_error_body(self):
        body = b"<Error><Code>NoSuchKey</Code><Message>gone</Message></Error>"
        with pytest.raises(StatusError) as exc_info:
            raise_for_status(HttpResult(404, body=body), 200)
        assert exc_info.value.status_code == 404
        assert exc_info.value.code == "NoSuchKey"

    @pytest.mark.parametrize("status", [401, 403])
    def test_raise_for_status_unauthorized(self, status):
        with pytest.raises(UnauthorizedError):
            raise_for_status(HttpResult(status), 200)

    def test_local_file_size_missing(self, tmp_path):
        with pytest.raises(LocalIOError):
            local_file_size(str(tmp_path / "missing"))


class TestRequest:
    """Tests for URL building and signing."""

    def test_urls(self, client):
        assert client.bucket_url("b") == "http://b.oss.example.com"
        assert client.object_url("b", "dir/a b.txt") == "http://b.oss.example.com/dir/a%20b.txt"

    def test_request_is_signed_and_dated(self, client, fake_oss):
        client.request("GET", "bucket", "")
        recorded = fake_oss.requests[-1]
        assert recorded.headers["authorization"].startswith("OSS test-id:")
        assert recorded.headers["date"].endswith("GMT")

    def test_wrong_secret_is_unauthorized(self, fake_oss):
        config = ClientConfig(host="oss.example.com", access_id="test-id", access_secret="wrong")
        bad_client = OssClient(config, http_client=httpx.Client(transport=fake_oss.transport()))
        with pytest.raises(UnauthorizedError):
            bad_client.head("bucket", "key")

    def test_empty_query_values_are_dropped(self, client, fake_oss):
        client.list_objects("bucket", prefix="p/")
        assert fake_oss.requests[-1].query == "prefix=p%2F"


class TestObjects:
    """Tests for PUT/GET/HEAD/DELETE/COPY."""

    def test_put_and_get(self, client, fake_oss):
        result = client.put(b"hello", "bucket", "greeting.txt")

        assert result.status_code == 200
        assert result.location == "http://bucket.oss.example.com/greeting.txt"
        assert result.etag
        assert fake_oss.get_object("bucket", "greeting.txt").data == b"hello"
        assert client.get_range("bucket", "greeting.txt") == b"hello"

    def test_put_sends_md5_type_and_disposition(self, client, fake_oss):
        client.put(b"<p/>", "bucket", "page.html", disposition="page.html",
                   headers={"x-oss-meta-owner": "me"})
        recorded = fake_oss.requests[-1]
        assert recorded.headers["content-type"] == "text/html"
        assert recorded.headers["content-md5"]
        assert recorded.headers["content-disposition"] == 'attachment; filename="page.html"'
        assert recorded.headers["x-oss-meta-owner"] == "me"

    def test_non_ascii_key_round_trip(self, client, fake_oss):
        result = client.put(b"data", "bucket", "文档/报告 1.txt", disposition="报告 1.txt")

        assert result.location == (
            "http://bucket.oss.example.com/%E6%96%87%E6%A1%A3/%E6%8A%A5%E5%91%8A%201.txt"
        )
        stored = fake_oss.get_object("bucket", "文档/报告 1.txt")
        assert stored.data == b"data"
        assert "filename*=UTF-8''" in stored.headers["content-disposition"]
        assert client.head("bucket", "文档/报告 1.txt").content_length == 4
        assert client.get_range("bucket", "文档/报告 1.txt") == b"data"

    def test_non_ascii_header_value_rejected(self, client, fake_oss):
        with pytest.raises(UsageError):
            client.put(b"x", "bucket", "k", headers={"x-oss-meta-owner": "张三"})
        assert fake_oss.requests == []

    def test_non_ascii_header_on_initiate_is_usage_error(self, client, fake_oss):
        with pytest.raises(UsageError):
            client.initiate_multipart_upload("bucket", "k", headers={"x-oss-meta-owner": "张三"})
        assert fake_oss.requests == []

    def test_upload_file_uses_basename(self, client, fake_oss, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_bytes(b"notes")
        result = client.upload_file(str(path), "bucket", "docs/")
        assert result.key == "docs/notes.txt"
        assert fake_oss.get_object("bucket", "docs/notes.txt").data == b"notes"

    def test_upload_missing_file(self, client, tmp_path):
        with pytest.raises(LocalIOError):
            client.upload_file(str(tmp_path / "missing.txt"), "bucket", "")

    def test_get_range(self, client, fake_oss):
        fake_oss.put_object("bucket", "k", b"0123456789")
        assert client.get_range("bucket", "k", "bytes=2-4") == b"234"

    def test_head(self, client, fake_oss):
        fake_oss.put_object("bucket", "k", b"0123456789")
        head = client.head("bucket", "k")
        assert head.content_length == 10
        assert head.etag == fake_oss.get_object("bucket", "k").etag
        assert head.last_modified is not None
        assert "content-length" in head.headers

    def test_head_missing(self, client):
        with pytest.raises(StatusError) as exc_info:
            client.head("bucket", "missing")
        assert exc_info.value.status_code == 404

    def test_stat_missing_returns_none(self, client):
        assert client.stat("bucket", "missing") is None

    def test_delete(self, client, fake_oss):
        fake_oss.put_object("bucket", "k", b"x")
        assert client.delete("bucket", "k") == 204
        assert fake_oss.get_object("bucket", "k") is None

    def test_copy(self, client, fake_oss):
        fake_oss.put_object("src", "a/b.txt", b"data")
        result = client.copy("dst", "b.txt", "/src/a/b.txt")
        assert result.source == "/src/a/b.txt"
        assert result.etag == fake_oss.get_object("src", "a/b.txt").etag
        assert result.last_modified is not None
        assert fake_oss.get_object("dst", "b.txt").data == b"data"

    def test_copy_missing_source(self, client):
        with pytest.raises(StatusError):
            client.copy("dst", "x", "/src/missing")


class TestListing:
    """Tests for paged listing."""

    def test_list_one_page(self, client, fake_oss):
        for key in ("a", "b", "c"):
            fake_oss.put_object("bucket", key, b"1")
        page = client.list_objects("bucket", max_keys=2)
        assert [e.key for e in page.entries] == ["a", "b"]
        assert page.is_truncated is True

    def test_iter_pages_uses_last_key_as_marker(self, client, fake_oss):
        for key in ("a", "b", "c", "d", "e"):
            fake_oss.put_object("bucket", key, b"1")

        pages = list(client.iter_list_pages("bucket", max_keys=2))

        assert [[e.key for e in p.entries] for p in pages] == [["a", "b"], ["c", "d"], ["e"]]
        markers = [r.query for r in fake_oss.requests_matching("GET")]
        assert markers == ["max-keys=2", "marker=b&max-keys=2", "marker=d&max-keys=2"]

    def test_iter_pages_with_prefix_and_delimiter(self, client, fake_oss):
        for key in ("p/a", "p/sub/x", "p/sub/y", "q/z"):
            fake_oss.put_object("bucket", key, b"1")
        pages = list(client.iter_list_pages("bucket", prefix="p/", delimiter="/"))
        assert [e.key for e in pages[0].entries] == ["p/a"]
        assert pages[0].common_prefixes == ["p/sub/"]

    def test_delete_multiple(self, client, fake_oss):
        for key in ("a", "b", "c"):
            fake_oss.put_object("bucket", key, b"1")
        result = client.delete_multiple("bucket", ["a", "b"])
        assert result.status_code == 200
        assert fake_oss.keys("bucket") == ["c"]
        assert fake_oss.requests[-1].query == "delete"


class TestMultipartPrimitives:
    """Tests for initiate/part/complete/abort."""

    def test_full_cycle(self, client, fake_oss):
        session = client.initiate_multipart_upload("bucket", "big.bin")
        etags = [
            client.upload_part(session, 1, b"abc", 3),
            client.upload_part(session, 2, b"de", 2),
        ]
        result = client.complete_multipart_upload(session, build_complete_manifest(etags))

        assert result.key == "big.bin"
        assert result.location == "http://bucket.oss.example.com/big.bin"
        assert fake_oss.get_object("bucket", "big.bin").data == b"abcde"

    def test_part_subresource_is_signed(self, client, fake_oss):
        session = client.initiate_multipart_upload("bucket", "k")
        client.upload_part(session, 3, b"x", 1)
        assert fake_oss.requests[-1].query == f"partNumber=3&uploadId={session.upload_id}"

    def test_copy_part(self, client, fake_oss):
        fake_oss.put_object("src", "obj", b"0123456789")
        session = client.initiate_multipart_upload("bucket", "copy")
        etag = client.copy_part(session, 1, "/src/obj", "bytes=0-4")
        client.complete_multipart_upload(session, build_complete_manifest([etag]))
        assert fake_oss.get_object("bucket", "copy").data == b"01234"

    def test_initiate_failure_raises_init_error(self, client, fake_oss):
        fake_oss.fail(status=500)
        with pytest.raises(InitError):
            client.initiate_multipart_upload("bucket", "k")

    def test_initiate_without_upload_id(self, fake_oss, config):
        def handler(request):
            return httpx.Response(200, content=b"<InitiateMultipartUploadResult/>")

        bare = OssClient(config, http_client=httpx.Client(transport=httpx.MockTransport(handler)))
        with pytest.raises(InitError, match="no UploadId"):
            bare.initiate_multipart_upload("bucket", "k")

    def test_complete_rejected_raises_completion_error(self, client):
        session = client.initiate_multipart_upload("bucket", "k")
        with pytest.raises(CompletionError) as exc_info:
            client.complete_multipart_upload(session, build_complete_manifest(['"nope"']))
        assert exc_info.value.status_code == 400

    def test_abort(self, client, fake_oss):
        session = client.initiate_multipart_upload("bucket", "k")
        client.abort_multipart_upload(session)
        assert fake_oss.aborted == [session.upload_id]

    def test_abort_unknown_session(self, client):
        with pytest.raises(StatusError):
            client.abort_multipart_upload(UploadSession("bucket", "k", "missing"))
