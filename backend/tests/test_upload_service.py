"""
Tests for UploadService: the flow around validation, credentials, mode,
connectivity, delivery, tracking and notifications.
"""
import pytest

from conftest import bucket_unavailable, make_file, transfer_failure
from labsmarket.models.upload import StorageProvider
from labsmarket.schemas.storage import ConnectivityDetails, ConnectivityResult
from labsmarket.services.notifications import NotificationVariant
from labsmarket.services.outcome import UploadStage
from labsmarket.services.points_service import UploadTracker
from labsmarket.storage.credentials import StorageCredentials
from labsmarket.storage.errors import ConfigurationError, FileValidationError
from labsmarket.storage.progress import ProgressState, UploadProgress
from labsmarket.storage.results import UploadFailure

MB = 1024 * 1024


class TestUploadFlow:
    """Tests for UploadService.upload_file."""

    @pytest.mark.asyncio
    async def test_complete_upload_with_tracking(self, harness, service, notifier, csv_file):
        awarded = []

        outcome = await service.upload_file(
            csv_file, StorageProvider.OORT, user_id="user-1", points_callback=awarded.append
        )

        assert outcome.stage == UploadStage.COMPLETE
        assert outcome.success is True
        assert outcome.url.startswith("https://s3-standard.oortech.com/labs-oort/uploads/")
        assert outcome.points == 4
        assert outcome.record is not None
        assert awarded == [4]

        assert harness.probers[0].bucket_checks == 1
        assert harness.orchestrators[0].calls[0][1] == "uploads/"

        assert len(notifier.notifications) == 1
        notification = notifier.notifications[0]
        assert notification.title == "Upload successful"
        assert notification.variant == NotificationVariant.SUCCESS
        assert "You earned 4 points for uploading data.csv" in notification.description

    @pytest.mark.asyncio
    async def test_no_user_skips_tracking(self, service, notifier, csv_file):
        outcome = await service.upload_file(csv_file, StorageProvider.AWS)

        assert outcome.stage == UploadStage.COMPLETE
        assert outcome.record is None
        assert outcome.points is None
        assert await service.history("user-1") == []
        assert len(notifier.notifications) == 1

    @pytest.mark.asyncio
    async def test_validation_failure(self, harness, service, notifier):
        progress = UploadProgress()
        file = make_file(name="huge.csv", data=b"", size=101 * MB)

        outcome = await service.upload_file(file, StorageProvider.AWS, user_id="user-1", progress=progress)

        assert outcome.stage == UploadStage.VALIDATION
        assert outcome.success is False
        assert outcome.error == "File size exceeds 100MB limit (101.00MB)"
        assert harness.probers == []
        assert harness.orchestrators == []
        assert progress.state == ProgressState.FAILED
        assert notifier.notifications[0].title == "File validation failed"

    @pytest.mark.asyncio
    async def test_no_file_selected(self, service):
        outcome = await service.upload_file(None, StorageProvider.AWS)

        assert outcome.stage == UploadStage.VALIDATION
        assert outcome.error == "No file selected"

    @pytest.mark.asyncio
    async def test_incomplete_credentials(self, harness, service, notifier, csv_file):
        service.save_credentials(StorageProvider.AWS, StorageCredentials("", "", "labs-aws"))

        outcome = await service.upload_file(csv_file, StorageProvider.AWS)

        assert outcome.stage == UploadStage.CONFIGURATION
        assert "credentials not configured" in outcome.error
        assert harness.orchestrators == []
        assert notifier.notifications[0].title == "Storage not configured"

    @pytest.mark.asyncio
    async def test_bucket_unavailable(self, harness, service, notifier, csv_file):
        harness.bucket_error = bucket_unavailable()

        outcome = await service.upload_file(csv_file, StorageProvider.AWS, user_id="user-1")

        assert outcome.stage == UploadStage.CONNECTIVITY
        assert "does not exist" in outcome.error
        assert harness.orchestrators == []
        assert notifier.notifications[0].title == "Connection failed"

    @pytest.mark.asyncio
    async def test_simulated_mode_skips_bucket_check(self, harness, service, notifier, csv_file):
        service.set_real(StorageProvider.AWS, False)
        harness.bucket_error = bucket_unavailable()

        outcome = await service.upload_file(csv_file, StorageProvider.AWS)

        assert outcome.stage == UploadStage.COMPLETE
        assert outcome.simulated is True
        assert harness.probers == []
        assert "(simulated mode)" in notifier.notifications[0].description

    @pytest.mark.asyncio
    async def test_transfer_failure(self, harness, service, notifier, csv_file):
        harness.upload_result = transfer_failure()
        progress = UploadProgress()

        outcome = await service.upload_file(csv_file, StorageProvider.AWS, user_id="user-1", progress=progress)

        assert outcome.stage == UploadStage.TRANSFER
        assert outcome.error == "Upload failed with status 403 Forbidden"
        assert outcome.attempts == ["sdk_put: denied"]
        assert progress.percent == 0
        assert await service.total_points("user-1") == 0
        notification = notifier.notifications[0]
        assert notification.title == "Upload failed"
        assert notification.variant == NotificationVariant.DESTRUCTIVE

    @pytest.mark.asyncio
    async def test_connectivity_failure_from_orchestrator(self, harness, service, csv_file):
        harness.upload_result = UploadFailure(error="Upload timed out.", category="connectivity")

        outcome = await service.upload_file(csv_file, StorageProvider.OORT)

        assert outcome.stage == UploadStage.CONNECTIVITY

    @pytest.mark.asyncio
    async def test_tracking_failure_keeps_upload(self, test_settings, kv_store, notifier, csv_file):
        from conftest import ServiceHarness

        class BrokenTracker(UploadTracker):
            async def track(self, **kwargs):
                return None

        harness = ServiceHarness(test_settings, kv_store, BrokenTracker(), notifier)

        outcome = await harness.service.upload_file(csv_file, StorageProvider.OORT, user_id="user-1")

        assert outcome.stage == UploadStage.TRACKING
        assert outcome.success is True
        assert outcome.url is not None
        assert outcome.points == 4
        assert len(notifier.notifications) == 1
        assert notifier.notifications[0].title == "Upload tracking failed"
        assert notifier.notifications[0].description == (
            "Your upload was successful, but we couldn't track it in our database."
        )

    @pytest.mark.asyncio
    async def test_custom_path(self, harness, service, csv_file):
        await service.upload_file(csv_file, StorageProvider.AWS, path="datasets/2024/")

        assert harness.orchestrators[0].calls[0][1] == "datasets/2024/"

    @pytest.mark.asyncio
    async def test_history_and_points(self, service):
        await service.upload_file(make_file(), StorageProvider.OORT, user_id="user-1")
        await service.upload_file(
            make_file(name="photo.png", content_type="image/png", data=b"\x89PNG"),
            StorageProvider.AWS,
            user_id="user-1",
        )

        history = await service.history("user-1")

        assert [upload.file_name for upload in history] == ["photo.png", "data.csv"]
        assert await service.total_points("user-1") == 6


class TestCredentialsAndMode:
    """Tests for credential and mode management through the service."""

    def test_save_and_reset(self, service):
        custom = StorageCredentials("AKIACUSTOM", "secret", "custom-bucket", region="eu-west-1")

        saved = service.save_credentials(StorageProvider.AWS, custom)
        assert saved == custom
        assert service.is_using_custom_credentials(StorageProvider.AWS) is True

        defaults = service.reset_credentials(StorageProvider.AWS)
        assert defaults.bucket == "labs-aws"
        assert service.is_using_custom_credentials(StorageProvider.AWS) is False

    def test_missing_fields(self, service):
        service.save_credentials(StorageProvider.OORT, StorageCredentials("key", "secret", "bucket"))
        assert service.missing_credential_fields(StorageProvider.OORT) == ["endpoint"]

    def test_toggle_mode(self, service, kv_store):
        assert service.is_real(StorageProvider.OORT) is True

        assert service.toggle_mode(StorageProvider.OORT) is False
        assert service.is_real(StorageProvider.OORT) is False
        assert service.is_real(StorageProvider.AWS) is True
        assert kv_store.get("use_real_oort") == "false"


class TestConnectivity:
    """Tests for connection testing through the service."""

    @pytest.mark.asyncio
    async def test_status_starts_untested(self, service):
        status = service.connection_status(StorageProvider.AWS)
        assert status.tested is False
        assert status.message == "Connection not tested"

    @pytest.mark.asyncio
    async def test_probe_updates_status(self, harness, service):
        result = await service.test_connection(StorageProvider.AWS)

        status = service.connection_status(StorageProvider.AWS)
        assert result.success is True
        assert status.tested is True
        assert status.is_valid is True
        assert service.connection_status(StorageProvider.OORT).tested is False

    @pytest.mark.asyncio
    async def test_failed_probe_replaces_status(self, harness, service):
        await service.test_connection(StorageProvider.AWS)
        harness.probe_result = ConnectivityResult(
            success=False,
            message="Invalid AWS Access Key ID. Please check your credentials.",
            details=ConnectivityDetails(error_category="invalid_access_key"),
        )

        await service.test_connection(StorageProvider.AWS)

        status = service.connection_status(StorageProvider.AWS)
        assert status.is_valid is False
        assert status.details.error_category == "invalid_access_key"

    @pytest.mark.asyncio
    async def test_saving_credentials_resets_status(self, service):
        await service.test_connection(StorageProvider.AWS)

        service.save_credentials(StorageProvider.AWS, StorageCredentials("AKIANEW", "s", "b"))

        assert service.connection_status(StorageProvider.AWS).tested is False


class TestPresignAndCors:
    """Tests for presigned uploads and bucket CORS setup."""

    def test_presign_upload(self, harness, service):
        harness.s3_client.generate_presigned_url.return_value = "https://signed.example/put"

        presigned = service.presign_upload(StorageProvider.AWS, "data.csv", "text/csv")

        assert presigned["upload_url"] == "https://signed.example/put"
        assert presigned["file_key"].startswith("uploads/")
        assert presigned["file_key"].endswith("-data.csv")
        assert presigned["public_url"] == (
            f"https://labs-aws.s3.us-east-1.amazonaws.com/{presigned['file_key']}"
        )
        assert presigned["expires_in"] == 3600

    def test_presign_rejects_unsupported_type(self, service):
        with pytest.raises(FileValidationError):
            service.presign_upload(StorageProvider.AWS, "app.exe", "application/x-msdownload")

    def test_presign_requires_credentials(self, service):
        service.save_credentials(StorageProvider.AWS, StorageCredentials("", "", "b"))

        with pytest.raises(ConfigurationError):
            service.presign_upload(StorageProvider.AWS, "data.csv", "text/csv")

    @pytest.mark.asyncio
    async def test_configure_cors(self, harness, service):
        message = await service.configure_cors(StorageProvider.OORT, ["https://labsmarket.example"])

        assert message == "CORS configuration successfully applied to bucket 'labs-oort'"
        kwargs = harness.s3_client.put_bucket_cors.call_args.kwargs
        assert kwargs["CORSConfiguration"]["CORSRules"][0]["AllowedOrigins"] == ["https://labsmarket.example"]
