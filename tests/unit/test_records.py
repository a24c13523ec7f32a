import json
import unittest

from privshare.backend.models import FileMetadataRecord
from privshare.backend.records import RecordStore
from privshare.errors import (
    PublishError,
    RecordLookupError,
    RecordNotFoundError,
    ValidationError,
)
from tests.test_support import (
    TEST_API_URL,
    TEST_GATEWAY_URL,
    TEST_PROVIDER_INFO,
    FakeHttpSession,
    FakeNetwork,
    FakeResponse,
    connection_error,
    routes,
)

SHARE_CODE = "privshare://abcd-efgh-ijkl-mnop"
METADATA = {
    "fileName": "notes.txt",
    "fileSize": 100,
    "mimeType": "text/plain",
    "isEncrypted": False,
    "encryptionKey": None,
    "iv": None,
    "uploader": "0xabc",
    "uploadTime": 1735689600000,
}


def make_store(session, **kwargs) -> RecordStore:
    kwargs.setdefault("jwt", "test-jwt")
    return RecordStore(api_url=TEST_API_URL, gateway_url=TEST_GATEWAY_URL, session=session, **kwargs)


class TestPublish(unittest.IsolatedAsyncioTestCase):
    async def test_publish_posts_mapping(self) -> None:
        network = FakeNetwork()
        store = make_store(network.session)

        receipt = await store.publish(SHARE_CODE, "bafkcid", METADATA, TEST_PROVIDER_INFO)

        method, url, kwargs = network.session.calls[0]
        self.assertEqual(method, "POST")
        self.assertEqual(url, f"{TEST_API_URL}/pinning/pinJSONToIPFS")
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer test-jwt")

        body = json.loads(kwargs["data"])
        self.assertEqual(body["pinataMetadata"]["name"], "privshare-mapping-abcd-efgh-ijkl-mnop")
        self.assertEqual(body["pinataMetadata"]["keyvalues"], {"shareCode": "abcd-efgh-ijkl-mnop", "pieceCid": "bafkcid"})
        content = body["pinataContent"]
        self.assertEqual(content["shareCode"], "abcd-efgh-ijkl-mnop")
        self.assertEqual(content["pieceCid"], "bafkcid")
        self.assertEqual(content["metadata"], METADATA)
        self.assertEqual(content["providerInfo"], TEST_PROVIDER_INFO)
        self.assertEqual(content["version"], "1.0")
        self.assertIsInstance(content["timestamp"], int)

        self.assertEqual(receipt.share_code, SHARE_CODE)
        self.assertEqual(receipt.piece_cid, "bafkcid")
        self.assertIn(receipt.ipfs_hash, network.pins)

    async def test_publish_accepts_record_and_stringifies_big_numbers(self) -> None:
        network = FakeNetwork()
        store = make_store(network.session)
        record = FileMetadataRecord(
            file_name="huge.bin", file_size=2 ** 60, mime_type="application/octet-stream",
            is_encrypted=False, piece_cid="bafkcid",
        )

        await store.publish(SHARE_CODE, "bafkcid", record, {"id": 2 ** 70})

        content = json.loads(network.session.calls[0][2]["data"])["pinataContent"]
        self.assertEqual(content["metadata"]["fileSize"], str(2 ** 60))
        self.assertEqual(content["providerInfo"]["id"], str(2 ** 70))

    async def test_key_secret_headers_when_no_jwt(self) -> None:
        network = FakeNetwork()
        store = make_store(network.session, jwt="", api_key="key", api_secret="secret")

        await store.publish(SHARE_CODE, "bafkcid", METADATA)

        headers = network.session.calls[0][2]["headers"]
        self.assertEqual(headers["pinata_api_key"], "key")
        self.assertEqual(headers["pinata_secret_api_key"], "secret")
        self.assertNotIn("Authorization", headers)

    async def test_missing_credentials(self) -> None:
        network = FakeNetwork()
        store = make_store(network.session, jwt="", api_key="", api_secret="")

        with self.assertRaises(PublishError) as ctx:
            await store.publish(SHARE_CODE, "bafkcid", METADATA)
        self.assertIn("configuration missing", str(ctx.exception))
        self.assertEqual(network.session.calls, [])

    async def test_rejected_write(self) -> None:
        network = FakeNetwork()
        network.publish_failure = FakeResponse(401, reason="Unauthorized")
        store = make_store(network.session)

        with self.assertRaises(PublishError) as ctx:
            await store.publish(SHARE_CODE, "bafkcid", METADATA)
        self.assertIn("401", str(ctx.exception))

    async def test_unreachable_service(self) -> None:
        session = FakeHttpSession(routes({}, default=connection_error()))
        store = make_store(session)

        with self.assertRaises(PublishError):
            await store.publish(SHARE_CODE, "bafkcid", METADATA)

    async def test_unexpected_response(self) -> None:
        session = FakeHttpSession(routes({}, default=FakeResponse(200, json_body={"nope": 1})))
        store = make_store(session)

        with self.assertRaises(PublishError):
            await store.publish(SHARE_CODE, "bafkcid", METADATA)

    async def test_invalid_share_code(self) -> None:
        network = FakeNetwork()
        store = make_store(network.session)

        with self.assertRaises(ValidationError):
            await store.publish("nope://abcd", "bafkcid", METADATA)
        self.assertEqual(network.session.calls, [])


class TestResolve(unittest.IsolatedAsyncioTestCase):
    async def test_resolve_published_record(self) -> None:
        network = FakeNetwork()
        store = make_store(network.session)
        await store.publish(SHARE_CODE, "bafkcid", METADATA, TEST_PROVIDER_INFO)

        record = await store.resolve(SHARE_CODE)

        self.assertEqual(record.piece_cid, "bafkcid")
        self.assertEqual(record.file_name, "notes.txt")
        self.assertEqual(record.file_size, 100)
        self.assertFalse(record.is_encrypted)
        self.assertEqual(record.provider_hint, "https://provider.test")
        self.assertEqual(record.share_code, "abcd-efgh-ijkl-mnop")

        _, list_url, list_kwargs = network.session.calls[1]
        self.assertEqual(list_url, f"{TEST_API_URL}/data/pinList")
        self.assertEqual(
            json.loads(list_kwargs["params"]["metadata[keyvalues]"]),
            {"shareCode": {"value": "abcd-efgh-ijkl-mnop", "op": "eq"}},
        )

    async def test_invalid_code_rejected_without_network(self) -> None:
        network = FakeNetwork()
        store = make_store(network.session)

        with self.assertRaises(ValidationError):
            await store.resolve("privshare://AB-cd")
        self.assertEqual(network.session.calls, [])

    async def test_not_found(self) -> None:
        network = FakeNetwork()
        store = make_store(network.session)

        with self.assertRaises(RecordNotFoundError):
            await store.resolve(SHARE_CODE)
        self.assertIsNone(await store.get_piece_cid(SHARE_CODE))

    async def test_listing_error_is_lookup_error(self) -> None:
        session = FakeHttpSession(routes({}, default=FakeResponse(500, reason="Internal Server Error")))
        store = make_store(session)

        with self.assertRaises(RecordLookupError) as ctx:
            await store.resolve(SHARE_CODE)
        self.assertNotIsInstance(ctx.exception, RecordNotFoundError)

    async def test_listing_unreachable(self) -> None:
        session = FakeHttpSession(routes({}, default=connection_error()))
        store = make_store(session)

        with self.assertRaises(RecordLookupError):
            await store.resolve(SHARE_CODE)

    async def test_gateway_failure(self) -> None:
        def handler(method, url, kwargs):
            if url.endswith("/data/pinList"):
                return FakeResponse(200, json_body={"rows": [{"ipfs_pin_hash": "QmMissing"}]})
            return FakeResponse(404, reason="Not Found")

        store = make_store(FakeHttpSession(handler))

        with self.assertRaises(RecordLookupError) as ctx:
            await store.resolve(SHARE_CODE)
        self.assertIn("Unable to get metadata", str(ctx.exception))

    async def test_malformed_pin_row_is_lookup_error(self) -> None:
        for rows in (["QmNotAnObject"], [None], {"0": "odd"}):
            with self.subTest(rows=rows):
                session = FakeHttpSession(routes({}, default=FakeResponse(200, json_body={"rows": rows})))
                store = make_store(session)

                with self.assertRaises(RecordLookupError) as ctx:
                    await store.resolve(SHARE_CODE)
                self.assertNotIsInstance(ctx.exception, RecordNotFoundError)

    async def test_record_without_piece_cid_is_not_found(self) -> None:
        def handler(method, url, kwargs):
            if url.endswith("/data/pinList"):
                return FakeResponse(200, json_body={"rows": [{"ipfs_pin_hash": "QmEmpty"}]})
            return FakeResponse(200, json_body={"metadata": METADATA})

        store = make_store(FakeHttpSession(handler))

        with self.assertRaises(RecordNotFoundError):
            await store.resolve(SHARE_CODE)

    async def test_get_piece_cid(self) -> None:
        network = FakeNetwork()
        store = make_store(network.session)
        await store.publish(SHARE_CODE, "bafkcid", METADATA)

        self.assertEqual(await store.get_piece_cid(SHARE_CODE), "bafkcid")


if __name__ == "__main__":
    unittest.main()
