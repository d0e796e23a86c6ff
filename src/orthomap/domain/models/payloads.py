from pydantic import BaseModel, Field


class InputFile(BaseModel):
    """A file handed over by the upload layer, already written to local disk."""

    path: str | None = Field(default=None, description="Local path of the stored upload.")
    filename: str | None = Field(default=None, description="Original client-side file name.")
    content_type: str | None = Field(default=None, description="Declared MIME type.")


class ProcessingOption(BaseModel):
    """A single reconstruction option forwarded to the external job runner."""

    name: str = Field(description="Option name understood by the job runner.")
    value: str | int | float | bool = Field(description="Option value.")
