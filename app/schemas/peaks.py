from pydantic import BaseModel, Field, model_validator
from typing import List

class PeaksArtifact(BaseModel):
    peaks: List[float]
    duration: float = Field(gt=0)
    # peaks per second, not the audio sample rate
    sampleRate: int = Field(gt=0)
    length: int = Field(ge=0)

    @model_validator(mode="after")
    def _length_matches(self):
        if self.length != len(self.peaks):
            raise ValueError(f"length={self.length} but {len(self.peaks)} peaks")
        return self

    @classmethod
    def build(cls, peaks: List[float], duration: float, rate: int) -> "PeaksArtifact":
        return cls(peaks=peaks, duration=duration, sampleRate=rate, length=len(peaks))
