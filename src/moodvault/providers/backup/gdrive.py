"""Google Drive backup backend."""

from __future__ import annotations

import io
import json
import logging
import socket
from datetime import datetime, timezone
from pathlib import Path

from moodvault.core.errors import (
    AuthRequiredError,
    AvailabilityError,
    BackupError,
    BackupTimeoutError,
    NetworkError,
)
from moodvault.core.models import BackupBlobDescriptor, Result, parse_optional_datetime
from moodvault.providers.backup.base import (
    BackendInfo,
    format_size,
    make_blob_name,
    matches_prefix,
    order_newest_first,
    safe_blob_prefix,
)

log = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/drive.file"]
_FOLDER_MIME = "application/vnd.google-apps.folder"
_KEYRING_SERVICE = "moodvault"
_KEYRING_USER = "gdrive_token"


def _quote(value: str) -> str:
    """Escape a value for a single-quoted Drive query literal."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


class DriveBackend:
    """Backups as JSON files inside one app-owned Google Drive folder.

    Every operation needs a signed-in account; until ``sign_in()`` has
    stored a token, calls raise AuthRequiredError.
    """

    def __init__(self, config: dict | None = None) -> None:
        config = config or {}
        self._folder_name = config.get("folder_name", "MoodVault_Backups")
        self._client_secrets = Path(
            config.get("client_secrets", "~/.config/moodvault/client_secret.json")
        ).expanduser()
        self._credential = config.get("credential", "keyring")
        self._timeout = float(config.get("timeout_seconds", 20))
        self._prefix = config.get("name_prefix", "moodvault_backup")
        self._service = None
        self._folder_id: str | None = None

    @property
    def name(self) -> str:
        return "drive"

    @property
    def info(self) -> BackendInfo:
        return BackendInfo(
            display_name="Google Drive",
            version="1.0.0",
            requires_auth=True,
        )

    # --- Auth ---

    def _load_token(self) -> str | None:
        if self._credential != "keyring":
            path = Path(self._credential).expanduser()
            return path.read_text(encoding="utf-8") if path.exists() else None
        try:
            import keyring

            return keyring.get_password(_KEYRING_SERVICE, _KEYRING_USER)
        except Exception:
            log.warning("Could not read Google Drive token from keyring", exc_info=True)
            return None

    def _store_token(self, token_json: str) -> None:
        if self._credential != "keyring":
            path = Path(self._credential).expanduser()
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(token_json, encoding="utf-8")
            return
        import keyring

        keyring.set_password(_KEYRING_SERVICE, _KEYRING_USER, token_json)

    @property
    def is_signed_in(self) -> bool:
        return self._service is not None or bool(self._load_token())

    def sign_in(self, interactive: bool = True) -> bool:
        """Make sure a token is stored, running the browser flow if allowed."""
        if self.is_signed_in:
            return True
        if not interactive:
            return False
        try:
            from google_auth_oauthlib.flow import InstalledAppFlow
        except ImportError as e:
            log.warning("google-auth-oauthlib not installed: %s", e)
            return False
        if not self._client_secrets.exists():
            log.warning("Google client secrets not found at %s", self._client_secrets)
            return False
        try:
            flow = InstalledAppFlow.from_client_secrets_file(str(self._client_secrets), SCOPES)
            creds = flow.run_local_server(port=0)
            self._store_token(creds.to_json())
        except Exception as e:
            log.warning("Google Drive sign-in failed: %s", e)
            return False
        log.info("Signed in to Google Drive")
        return True

    def sign_out(self) -> None:
        self._service = None
        self._folder_id = None
        if self._credential != "keyring":
            path = Path(self._credential).expanduser()
            if path.exists():
                path.unlink()
            return
        try:
            import keyring

            keyring.delete_password(_KEYRING_SERVICE, _KEYRING_USER)
        except Exception:
            log.debug("No Google Drive token to remove", exc_info=True)

    def _get_service(self):
        """Lazy-initialize the Google Drive API service."""
        if self._service is not None:
            return self._service
        token_json = self._load_token()
        if not token_json:
            raise AuthRequiredError(
                "Not signed in to Google Drive. Run 'mv backup auth' first."
            )
        try:
            import google_auth_httplib2
            import httplib2
            from google.oauth2.credentials import Credentials
            from googleapiclient.discovery import build
        except ImportError as e:
            raise AvailabilityError(
                f"Google Drive SDK not installed: {e}. "
                "Install with: pip install moodvault[drive]"
            ) from e

        try:
            creds = Credentials.from_authorized_user_info(json.loads(token_json), SCOPES)
        except (ValueError, KeyError) as e:
            raise AuthRequiredError(f"Stored Google Drive token is invalid: {e}") from e

        http = google_auth_httplib2.AuthorizedHttp(
            creds, http=httplib2.Http(timeout=self._timeout),
        )
        self._service = self._execute(
            lambda: build("drive", "v3", http=http, cache_discovery=False),
            "connect",
        )
        return self._service

    def _execute(self, call, what: str):
        """Run one API call, mapping transport failures to the error taxonomy."""
        import httplib2
        from google.auth.exceptions import RefreshError, TransportError
        from googleapiclient.errors import HttpError

        try:
            return call()
        except RefreshError as e:
            self._service = None
            raise AuthRequiredError(
                f"Google Drive {what}: sign-in no longer valid ({e}). Run 'mv backup auth'."
            ) from e
        except HttpError as e:
            status = getattr(e.resp, "status", None)
            if status == 401:
                self._service = None
                raise AuthRequiredError(f"Google Drive {what}: authorization expired") from e
            raise NetworkError(f"Google Drive {what} failed (HTTP {status}): {e}") from e
        except (socket.timeout, TimeoutError) as e:
            raise BackupTimeoutError(f"Google Drive {what} timed out after {self._timeout:g}s") from e
        except (OSError, httplib2.HttpLib2Error, TransportError) as e:
            raise NetworkError(f"Google Drive {what} failed: {e}") from e

    def _ensure_folder(self, service) -> str:
        """Find or create the app folder. Returns folder ID."""
        if self._folder_id:
            return self._folder_id
        query = (
            f"name='{_quote(self._folder_name)}' and mimeType='{_FOLDER_MIME}' "
            f"and trashed=false"
        )
        result = self._execute(
            lambda: service.files().list(q=query, spaces="drive", fields="files(id)").execute(),
            "folder lookup",
        )
        files = result.get("files", [])
        if files:
            self._folder_id = files[0]["id"]
            return self._folder_id

        metadata = {"name": self._folder_name, "mimeType": _FOLDER_MIME}
        folder = self._execute(
            lambda: service.files().create(body=metadata, fields="id").execute(),
            "folder create",
        )
        self._folder_id = folder["id"]
        log.info("Created Google Drive folder %s", self._folder_name)
        return self._folder_id

    # --- Contract ---

    def is_available(self) -> bool:
        """Drive is usable once the SDK is installed and an account is linked."""
        try:
            import googleapiclient  # noqa: F401
        except ImportError:
            return False
        return self.is_signed_in

    def upload(self, data: bytes, name_hint: str) -> Result:
        try:
            from googleapiclient.http import MediaIoBaseUpload

            service = self._get_service()
            folder_id = self._ensure_folder(service)
            now = datetime.now(timezone.utc)
            file_name = make_blob_name(name_hint, now)
            metadata = {
                "name": file_name,
                "parents": [folder_id],
                "description": f"MoodVault backup created on {now.isoformat()}",
            }
            media = MediaIoBaseUpload(io.BytesIO(data), mimetype="application/json")
            uploaded = self._execute(
                lambda: service.files().create(
                    body=metadata, media_body=media, fields="id",
                ).execute(),
                "upload",
            )
        except ImportError as e:
            return Result.fail(f"Google Drive SDK not installed: {e}")
        except BackupError as e:
            log.warning("Google Drive upload failed: %s", e)
            return Result.fail(f"Upload failed: {e}")

        return Result.ok(
            f"Backup uploaded to Google Drive ({format_size(len(data))})",
            value=uploaded["id"],
        )

    def list(self) -> list[BackupBlobDescriptor]:
        service = self._get_service()
        folder_id = self._ensure_folder(service)
        prefix = safe_blob_prefix(self._prefix)
        query = f"'{_quote(folder_id)}' in parents and name contains '{prefix}_' and trashed=false"

        blobs: list[BackupBlobDescriptor] = []
        page_token = None
        while True:
            result = self._execute(
                lambda token=page_token: service.files().list(
                    q=query,
                    spaces="drive",
                    fields="nextPageToken, files(id,name,createdTime,size)",
                    pageSize=100,
                    pageToken=token,
                ).execute(),
                "list",
            )
            for item in result.get("files", []):
                name = item.get("name", "")
                if not matches_prefix(name, self._prefix):
                    continue
                try:
                    created = parse_optional_datetime(item.get("createdTime"))
                except ValueError:
                    created = None
                size = item.get("size")
                blobs.append(BackupBlobDescriptor(
                    id=item["id"],
                    name=name,
                    created_at=created,
                    size=int(size) if size is not None else None,
                ))
            page_token = result.get("nextPageToken")
            if not page_token:
                break

        return order_newest_first(blobs, trust_backend_time=True)

    def download(self, blob_id: str) -> bytes:
        service = self._get_service()
        content = self._execute(
            lambda: service.files().get_media(fileId=blob_id).execute(),
            "download",
        )
        if isinstance(content, str):
            content = content.encode("utf-8")
        return content

    def delete(self, blob_id: str) -> bool:
        try:
            service = self._get_service()
            self._execute(lambda: service.files().delete(fileId=blob_id).execute(), "delete")
        except BackupError as e:
            log.warning("Google Drive delete of %s failed: %s", blob_id, e)
            return False
        return True

    def status(self) -> dict:
        user = None
        if self.is_signed_in:
            try:
                service = self._get_service()
                about = self._execute(
                    lambda: service.about().get(fields="user(emailAddress)").execute(),
                    "account lookup",
                )
                user = about.get("user", {}).get("emailAddress")
            except BackupError as e:
                log.debug("Could not read Drive account: %s", e)
        return {
            "type": self.info.display_name,
            "available": self.is_available(),
            "signed_in": self.is_signed_in,
            "user": user,
        }
