from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel

SuggestionType = Literal["stock", "etf", "crypto", "fund", "other"]


class SymbolSuggestion(BaseModel):
    symbol: str
    name: str
    type: SuggestionType
    exchange: Optional[str] = None
