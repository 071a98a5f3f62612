from __future__ import annotations
from pydantic import BaseModel, ConfigDict, Field
from typing import Literal

from ..domain.models import LinkParameters


class OpenSessionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    path: str = Field(min_length=1)
    baud_rate: int = Field(default=9600, alias="baudRate", gt=0)
    data_bits: Literal[5, 6, 7, 8] = Field(default=8, alias="dataBits")
    stop_bits: Literal[1, 1.5, 2] = Field(default=1, alias="stopBits")
    parity: Literal["none", "even", "odd", "mark", "space"] = "none"

    def link(self) -> LinkParameters:
        return LinkParameters(
            baud_rate=self.baud_rate,
            data_bits=self.data_bits,
            stop_bits=self.stop_bits,
            parity=self.parity,
        )


class SendMessageRequest(BaseModel):
    path: str = Field(min_length=1)
    message: str


class CloseSessionRequest(BaseModel):
    path: str = Field(min_length=1)
