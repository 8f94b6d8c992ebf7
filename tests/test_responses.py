"""Tests for XML response parsing and request body building."""

from datetime import datetime, timezone

import pytest
import xmltodict

from osscmd.errors import ParseError
from osscmd.responses import (
    build_complete_manifest,
    build_delete_body,
    parse_complete,
    parse_copy_result,
    parse_error,
    parse_http_time,
    parse_initiate,
    parse_iso_time,
    parse_list_objects,
)

LIST_BODY = b"""<?xml version="1.0" encoding="UTF-8"?>
<ListBucketResult>
  <Name>photos</Name>
  <Prefix>2024/</Prefix>
  <Marker></Marker>
  <MaxKeys>2</MaxKeys>
  <Delimiter>/</Delimiter>
  <IsTruncated>true</IsTruncated>
  <NextMarker>2024/b.jpg</NextMarker>
  <Contents>
    <Key>2024/a.jpg</Key>
    <LastModified>2024-01-02T03:04:05.000Z</LastModified>
    <ETag>"AAA"</ETag>
    <Size>344606</Size>
    <StorageClass>Standard</StorageClass>
  </Contents>
  <CommonPrefixes><Prefix>2024/raw/</Prefix></CommonPrefixes>
</ListBucketResult>"""


class TestTimes:
    def test_iso_with_fraction(self):
        assert parse_iso_time("2024-01-02T03:04:05.000Z") == datetime(
            2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc
        )

    def test_iso_without_fraction(self):
        assert parse_iso_time("2024-01-02T03:04:05Z").second == 5

    def test_iso_empty(self):
        assert parse_iso_time("") is None

    def test_iso_invalid(self):
        with pytest.raises(ParseError):
            parse_iso_time("yesterday")

    def test_http_time(self):
        parsed = parse_http_time("Tue, 02 Jan 2024 03:04:05 GMT")
        assert parsed == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

    def test_http_time_invalid(self):
        with pytest.raises(ParseError):
            parse_http_time("not a date")


class TestParseListObjects:
    """Tests for <ListBucketResult> parsing."""

    def test_single_entry_is_still_a_list(self):
        page = parse_list_objects(LIST_BODY, "photos")
        assert len(page.entries) == 1
        entry = page.entries[0]
        assert entry.key == "2024/a.jpg"
        assert entry.size == 344606
        assert entry.etag == '"AAA"'
        assert entry.storage_class == "Standard"
        assert entry.last_modified.year == 2024

    def test_page_fields(self):
        page = parse_list_objects(LIST_BODY, "photos")
        assert page.bucket == "photos"
        assert page.prefix == "2024/"
        assert page.max_keys == 2
        assert page.is_truncated is True
        assert page.next_marker == "2024/b.jpg"
        assert page.common_prefixes == ["2024/raw/"]

    def test_empty_listing(self):
        body = b"<ListBucketResult><Name>b</Name><IsTruncated>false</IsTruncated></ListBucketResult>"
        page = parse_list_objects(body, "b")
        assert page.entries == []
        assert page.continuation_marker is None

    def test_malformed_xml(self):
        with pytest.raises(ParseError):
            parse_list_objects(b"<ListBucketResult>", "b")

    def test_wrong_root(self):
        with pytest.raises(ParseError):
            parse_list_objects(b"<Other/>", "b")

    def test_bad_size(self):
        body = LIST_BODY.replace(b"<Size>344606</Size>", b"<Size>big</Size>")
        with pytest.raises(ParseError):
            parse_list_objects(body, "photos")


class TestSmallDocuments:
    def test_parse_error_body(self):
        body = b"<Error><Code>NoSuchKey</Code><Message>gone</Message></Error>"
        assert parse_error(body) == ("NoSuchKey", "gone")

    def test_parse_error_tolerates_garbage(self):
        assert parse_error(b"<html>") == (None, None)
        assert parse_error(b"") == (None, None)

    def test_parse_initiate(self):
        body = (b"<InitiateMultipartUploadResult><Bucket>b</Bucket><Key>k</Key>"
                b"<UploadId>0004B9894A22E5B1888A1E29F8236E2D</UploadId>"
                b"</InitiateMultipartUploadResult>")
        assert parse_initiate(body)["UploadId"] == "0004B9894A22E5B1888A1E29F8236E2D"

    def test_parse_complete(self):
        body = (b"<CompleteMultipartUploadResult><Location>http://b.host/k</Location>"
                b"<Bucket>b</Bucket><Key>k</Key><ETag>\"E\"</ETag>"
                b"</CompleteMultipartUploadResult>")
        assert parse_complete(body) == {
            "Location": "http://b.host/k", "Bucket": "b", "Key": "k", "ETag": '"E"',
        }

    def test_parse_copy_part_result(self):
        body = b"<CopyPartResult><LastModified>x</LastModified><ETag>\"P\"</ETag></CopyPartResult>"
        assert parse_copy_result(body, root="CopyPartResult")["ETag"] == '"P"'


class TestBuilders:
    """Tests for request body builders."""

    def test_manifest_lists_parts_in_order(self):
        body = build_complete_manifest(['"A"', '"B"', '"C"'])
        document = xmltodict.parse(body)
        parts = document["CompleteMultipartUpload"]["Part"]
        assert [p["PartNumber"] for p in parts] == ["1", "2", "3"]
        assert [p["ETag"] for p in parts] == ['"A"', '"B"', '"C"']

    def test_manifest_has_no_xml_declaration(self):
        assert build_complete_manifest(['"A"']).startswith(b"<CompleteMultipartUpload>")

    def test_delete_body(self):
        body = build_delete_body(["a", "b"], quiet=True)
        document = xmltodict.parse(body)
        assert document["Delete"]["Quiet"] == "true"
        assert [o["Key"] for o in document["Delete"]["Object"]] == ["a", "b"]
