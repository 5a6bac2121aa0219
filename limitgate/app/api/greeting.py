"""Greeting endpoint protected by the default route rule."""

from fastapi import APIRouter
from pydantic import BaseModel

router = APIRouter()


class Greeting(BaseModel):
    msg: str


@router.get("/hello", response_model=Greeting)
async def hello() -> Greeting:
    return Greeting(msg="hello")
