"""GET /v1/bins/{prefix} - BIN lookup"""

from fastapi import APIRouter, Depends, HTTPException

from lcr_gateway.api.dependencies import get_bin_resolver
from lcr_gateway.api.v1.schemas import BinInfoSchema, BinLookupResponse
from lcr_gateway.domain.bin_lookup import BinResolver

router = APIRouter()


@router.get("/bins/{prefix}", response_model=BinLookupResponse)
def lookup_bin(prefix: str, resolver: BinResolver = Depends(get_bin_resolver)):
    """Every network claiming a 6-8 digit prefix. Unknown or malformed prefixes are 404."""
    matches = resolver.lookup(prefix)
    if not matches:
        raise HTTPException(status_code=404, detail="No BIN information found")
    return BinLookupResponse(prefix=prefix, matches=[BinInfoSchema.from_domain(m) for m in matches])
