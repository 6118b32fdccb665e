from pydantic import BaseModel

class UploadOut(BaseModel):
    success: bool
    id: str

class DeleteOut(BaseModel):
    success: bool
    id: str
