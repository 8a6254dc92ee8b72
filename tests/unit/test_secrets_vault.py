"""Tests for the Vault secret store with a mocked hvac client."""

from pathlib import Path
from unittest.mock import MagicMock

import pytest
from hvac import exceptions as hvac_exceptions

from tenantdb.config.settings import VaultAuthMethod
from tenantdb.secrets.config import VaultConfig
from tenantdb.secrets.exceptions import (
    SecretNotFoundError,
    SecretsAccessError,
    SecretsConnectionError,
)
from tenantdb.secrets.types import DatabaseCredentials
from tenantdb.secrets.vault import VaultSecretStore


@pytest.fixture
def client() -> MagicMock:
    """Mock hvac client that is authenticated."""
    mock = MagicMock()
    mock.is_authenticated.return_value = True
    return mock


@pytest.fixture
def store(client: MagicMock) -> VaultSecretStore:
    return VaultSecretStore(VaultConfig(token="root-token"), client=client)


class TestVaultConfig:
    """Tests for VaultConfig validation."""

    def test_token_required_for_token_auth(self) -> None:
        """Test that token auth without a token fails fast."""
        with pytest.raises(SecretsConnectionError) as exc_info:
            VaultConfig().validate()

        assert "token" in str(exc_info.value)

    def test_approle_requires_both_ids(self) -> None:
        """Test AppRole field checks."""
        config = VaultConfig(auth_method=VaultAuthMethod.APPROLE, role_id="role")

        with pytest.raises(SecretsConnectionError) as exc_info:
            config.validate()

        assert "secret_id" in str(exc_info.value)

    def test_store_validates_on_construction(self) -> None:
        """Test that an incomplete config cannot build a store."""
        with pytest.raises(SecretsConnectionError):
            VaultSecretStore(VaultConfig(auth_method=VaultAuthMethod.USERPASS))


class TestVaultSecretStore:
    """Tests for VaultSecretStore."""

    @pytest.mark.asyncio
    async def test_connect_with_token(self, store: VaultSecretStore, client: MagicMock) -> None:
        """Test token authentication."""
        await store.connect()

        assert client.token == "root-token"
        client.is_authenticated.assert_called_once()

    @pytest.mark.asyncio
    async def test_connect_with_kubernetes(self, client: MagicMock, tmp_path: Path) -> None:
        """Test Kubernetes authentication with the service account token."""
        token_file = tmp_path / "token"
        token_file.write_text("service-account-jwt\n")
        config = VaultConfig(
            auth_method=VaultAuthMethod.KUBERNETES,
            kubernetes_role="tenantdb",
            kubernetes_token_path=str(token_file),
        )
        store = VaultSecretStore(config, client=client)

        await store.connect()

        client.auth.kubernetes.login.assert_called_once_with(
            role="tenantdb", jwt="service-account-jwt", mount_point="kubernetes"
        )
        assert await store.health_check() is True

    @pytest.mark.asyncio
    async def test_kubernetes_token_missing(self, client: MagicMock, tmp_path: Path) -> None:
        """Test that a missing service account token fails the connection."""
        config = VaultConfig(
            auth_method=VaultAuthMethod.KUBERNETES,
            kubernetes_role="tenantdb",
            kubernetes_token_path=str(tmp_path / "absent"),
        )
        store = VaultSecretStore(config, client=client)

        with pytest.raises(SecretsConnectionError) as exc_info:
            await store.connect()

        assert "service account token not found" in str(exc_info.value)
        client.auth.kubernetes.login.assert_not_called()

    @pytest.mark.asyncio
    async def test_connect_with_userpass(self, client: MagicMock) -> None:
        """Test UserPass authentication."""
        config = VaultConfig(
            auth_method=VaultAuthMethod.USERPASS, username="migrator", password="s3cret"
        )
        store = VaultSecretStore(config, client=client)

        await store.connect()

        client.auth.userpass.login.assert_called_once_with(username="migrator", password="s3cret")
        client.is_authenticated.assert_called_once()

    @pytest.mark.asyncio
    async def test_userpass_login_failure(self, client: MagicMock) -> None:
        """Test that a failed login surfaces as a connection error."""
        client.auth.userpass.login.side_effect = hvac_exceptions.InvalidRequest("invalid password")
        config = VaultConfig(
            auth_method=VaultAuthMethod.USERPASS, username="migrator", password="wrong"
        )
        store = VaultSecretStore(config, client=client)

        with pytest.raises(SecretsConnectionError) as exc_info:
            await store.connect()

        assert "invalid password" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_connect_rejected(self, client: MagicMock) -> None:
        """Test that rejected credentials surface as a connection error."""
        client.is_authenticated.return_value = False
        store = VaultSecretStore(VaultConfig(token="bad"), client=client)

        with pytest.raises(SecretsConnectionError):
            await store.connect()

    @pytest.mark.asyncio
    async def test_read_credentials(
        self,
        store: VaultSecretStore,
        client: MagicMock,
        sample_credentials: DatabaseCredentials,
    ) -> None:
        """Test reading a bundle from KV v2."""
        client.secrets.kv.v2.read_secret_version.return_value = {
            "data": {"data": sample_credentials.to_secret_data()}
        }

        creds = await store.get_credentials_by_path("database/tenants/acme/catalog/write")

        assert creds == sample_credentials
        client.secrets.kv.v2.read_secret_version.assert_called_once_with(
            path="database/tenants/acme/catalog/write",
            mount_point="secret",
            raise_on_deleted_version=True,
        )

    @pytest.mark.asyncio
    async def test_read_missing_path(self, store: VaultSecretStore, client: MagicMock) -> None:
        """Test that InvalidPath maps to SecretNotFoundError."""
        client.secrets.kv.v2.read_secret_version.side_effect = hvac_exceptions.InvalidPath()

        with pytest.raises(SecretNotFoundError) as exc_info:
            await store.read_secret("database/tenants/acme/catalog/write")

        assert exc_info.value.transient is False

    @pytest.mark.asyncio
    async def test_read_forbidden(self, store: VaultSecretStore, client: MagicMock) -> None:
        """Test that Forbidden maps to a transient access error."""
        client.secrets.kv.v2.read_secret_version.side_effect = hvac_exceptions.Forbidden()

        with pytest.raises(SecretsAccessError) as exc_info:
            await store.read_secret("database/tenants/acme/catalog/write")

        assert exc_info.value.transient is True

    @pytest.mark.asyncio
    async def test_store_credentials(
        self,
        store: VaultSecretStore,
        client: MagicMock,
        sample_credentials: DatabaseCredentials,
    ) -> None:
        """Test writing a bundle."""
        await store.store_credentials("database/shared/shared/catalog/write", sample_credentials)

        client.secrets.kv.v2.create_or_update_secret.assert_called_once_with(
            path="database/shared/shared/catalog/write",
            secret=sample_credentials.to_secret_data(),
            mount_point="secret",
        )

    @pytest.mark.asyncio
    async def test_store_failure(self, store: VaultSecretStore, client: MagicMock) -> None:
        """Test that write failures are wrapped."""
        client.secrets.kv.v2.create_or_update_secret.side_effect = RuntimeError("boom")

        with pytest.raises(SecretsAccessError):
            await store.store_secret("p", {"k": "v"})

    @pytest.mark.asyncio
    async def test_credentials_exist(self, store: VaultSecretStore, client: MagicMock) -> None:
        """Test existence checks through secret metadata."""
        assert await store.credentials_exist("present") is True

        client.secrets.kv.v2.read_secret_metadata.side_effect = hvac_exceptions.InvalidPath()
        assert await store.credentials_exist("absent") is False

    @pytest.mark.asyncio
    async def test_health_check(self, store: VaultSecretStore, client: MagicMock) -> None:
        """Test health reporting before and after close."""
        assert await store.health_check() is True

        await store.close()

        assert await store.health_check() is False
