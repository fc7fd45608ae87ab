from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.utils.file_utils import decode_base64_payload


class Base64Document(BaseModel):
    """Shared fields for requests carrying a base64 encoded document."""

    model_config = ConfigDict(populate_by_name=True)

    file_name: str = Field(..., alias="fileName", min_length=1, description="Source file name.")
    file_data: str = Field(..., alias="fileData", min_length=1, description="Base64 document bytes.")

    @field_validator("file_name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @field_validator("file_data")
    @classmethod
    def _check_base64(cls, value: str) -> str:
        decode_base64_payload(value)
        return value

    def decoded_bytes(self) -> bytes:
        return decode_base64_payload(self.file_data)


class ConversionRequest(Base64Document):
    folder_id: str = Field(..., alias="folderId", min_length=1, description="Destination folder id.")
    access_token: str = Field(..., alias="accessToken", min_length=1, description="Bearer credential.")

    @field_validator("folder_id", "access_token")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


@dataclass(frozen=True)
class PageImage:
    page: int
    content: bytes
    content_type: str = "image/jpeg"


class UploadResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    page: int = Field(..., ge=1)
    file_id: str = Field(..., alias="fileId")
