from typing import Optional
import httpx

# Utils
from utils.log_utils import LogUtil
from utils.environment_utils import EnvironmentUtils

# Models
from models.node_config_data import FileReference

# Exceptions
from exceptions.flow_exception import FlowApiException


class FileUploadService:
    """Stores media for file-kind fields and hands back a reference token."""
    def __init__(
        self,
        log_util: LogUtil,
        environment_utils: EnvironmentUtils,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.log_util = log_util
        self.upload_api_url = environment_utils.get_env_variable("UPLOAD_API_URL")
        self.timeout = environment_utils.get_env_variable("HTTP_TIMEOUT_SECONDS")
        self.transport = transport

    async def upload(self, organization_id: str, filename: str, content_type: str, content: bytes) -> FileReference:
        try:
            async with httpx.AsyncClient(base_url=self.upload_api_url, timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(
                    "/api/uploads",
                    data={"organization_id": organization_id},
                    files={"file": (filename, content, content_type)}
                )
        except httpx.HTTPError as e:
            raise FlowApiException(message=f"Upload service unreachable: {str(e)}")
        if not response.is_success:
            raise FlowApiException(
                message=f"Upload of {filename} failed with status {response.status_code}",
                upstream_status=response.status_code
            )
        try:
            body = response.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            raise FlowApiException(
                message=f"Upload of {filename} returned an unreadable response",
                upstream_status=response.status_code
            )
        token = body.get("token")
        if not token:
            raise FlowApiException(message=f"Upload of {filename} returned no token")
        self.log_util.info(service_name="FileUploadService", message=f"Uploaded {filename} ({len(content)} bytes)")
        return FileReference(token=token, filename=filename, contentType=content_type)
