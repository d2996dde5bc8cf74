"""Tests for api/cloud.py and api/auth.py: the cloud drive client."""

import pytest

from unit_storage import crypto
from unit_storage.api.auth import CloudAuthenticator
from unit_storage.api.cloud import CloudDrive
from unit_storage.exceptions import (
    AuthenticationError,
    MalformedDataError,
    RemoteFetchError,
    RemoteFileNotFoundError,
)


class TestCloudAuthenticator:

    async def test_sign_in_with_sync_provider(self):
        auth = CloudAuthenticator()
        seen = []

        def provider(silent):
            seen.append(silent)
            return "tok"

        assert await auth.sign_in(provider, silent=True) == "tok"
        assert auth.is_signed_in
        assert seen == [True]

    async def test_sign_in_with_async_mapping_provider(self):
        auth = CloudAuthenticator()

        async def provider(silent):
            return {"access_token": "tok", "expires_in": 3600}

        await auth.sign_in(provider)
        assert auth.require_token() == "tok"

    @pytest.mark.parametrize("result", [None, "", {}, {"access_token": 5}])
    async def test_sign_in_without_token_fails(self, result):
        auth = CloudAuthenticator()
        with pytest.raises(AuthenticationError):
            await auth.sign_in(lambda silent: result)
        assert not auth.is_signed_in

    def test_sign_out(self):
        auth = CloudAuthenticator()
        auth.set_token("tok")
        auth.sign_out()
        assert auth.access_token is None
        with pytest.raises(AuthenticationError):
            auth.require_token()


class TestCloudDrive:

    async def test_requires_sign_in(self, drive_server):
        client = CloudDrive(base_url=drive_server.base_url)
        try:
            with pytest.raises(AuthenticationError):
                await client.list_files()
        finally:
            await client.close()

    async def test_upload_and_download_json(self, drive, drive_server):
        result = await drive.upload_json("members.json", {"members": []})
        file_id = result["id"]
        assert drive_server.files[file_id]["name"] == "members.json"
        assert drive_server.files[file_id]["mimeType"] == "application/json"
        assert await drive.download_json(file_id) == {"members": []}

    async def test_update_replaces_content(self, drive, drive_server):
        file_id = drive_server.add_file("config.json", '{"a": 1}')
        await drive.update_raw(file_id, '{"a": 2}', "application/json")
        assert await drive.download_json(file_id) == {"a": 2}

    async def test_list_files_with_query(self, drive, drive_server):
        drive_server.add_file("a.json", "{}")
        drive_server.add_file("b.json", "{}")
        files = await drive.list_files("name = 'b.json'")
        assert [f["name"] for f in files] == ["b.json"]
        assert len(await drive.list_files(page_size=1)) == 1

    async def test_metadata_and_exists(self, drive, drive_server):
        file_id = drive_server.add_file("a.json", "{}")
        assert (await drive.get_metadata(file_id))["name"] == "a.json"
        assert await drive.exists(file_id) is True
        assert await drive.exists("file-404") is False

    async def test_download_missing_file(self, drive):
        with pytest.raises(RemoteFileNotFoundError):
            await drive.download_raw("file-404")

    async def test_download_json_malformed(self, drive, drive_server):
        file_id = drive_server.add_file("a.json", "{nope")
        with pytest.raises(MalformedDataError):
            await drive.download_json(file_id)

    async def test_delete(self, drive, drive_server):
        file_id = drive_server.add_file("a.json", "{}")
        assert await drive.delete_file(file_id) is True
        assert file_id not in drive_server.files

    async def test_rejected_token_signs_out(self, drive, drive_server):
        drive_server.token = "rotated"
        with pytest.raises(AuthenticationError):
            await drive.list_files()
        assert not drive.auth.is_signed_in

    async def test_server_error(self, drive, drive_server):
        drive_server.fail_writes = True
        with pytest.raises(RemoteFetchError) as exc_info:
            await drive.upload_raw("a.txt", "x")
        assert exc_info.value.status == 500


class TestSecureFiles:

    async def test_secure_round_trip(self, drive, drive_server, key_pair):
        result = await drive.secure_upload("secret.txt", {"pin": 1}, key_pair.public_key)
        file_id = result["id"]
        assert not drive_server.files[file_id]["content"].startswith("{")
        assert drive.secure_files.is_secure(file_id)
        assert await drive.secure_download(file_id, key_pair.private_key) == {"pin": 1}

    async def test_plain_file_is_returned_as_is(self, drive, drive_server, key_pair):
        file_id = drive_server.add_file("plain.txt", "hello", "text/plain")
        assert await drive.secure_download(file_id, key_pair.private_key) == "hello"

    async def test_wrong_key_returns_ciphertext(self, drive, key_pair):
        result = await drive.secure_upload("secret.txt", "x", key_pair.public_key)
        other = crypto.generate_key_pair()
        content = await drive.secure_download(result["id"], other.private_key)
        assert content == await drive.download_raw(result["id"])

    async def test_secure_upload_requires_key(self, drive):
        with pytest.raises(ValueError):
            await drive.secure_upload("secret.txt", "x", None)

    async def test_delete_forgets_secure_flag(self, drive, key_pair):
        result = await drive.secure_upload("secret.txt", "x", key_pair.public_key)
        await drive.delete_file(result["id"])
        assert not drive.secure_files.is_secure(result["id"])
