from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Request

from cryptowick.core.logging import log_with_correlation
from cryptowick.schemas.candles import candles_to_series
from cryptowick.schemas.expressions import (
    CustomSeriesRead,
    ExpressionEvaluateRequest,
    ExpressionEvaluateResponse,
    ExpressionParseRequest,
    ExpressionParseResponse,
)
from cryptowick.services.custom_series import default_custom_series
from cryptowick.services.series_expression import evaluate_formula, node_to_dict
from cryptowick.services.series_expression_dsl import parse_expression
from cryptowick.services.trade_analysis import build_trade_analysis

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/parse", response_model=ExpressionParseResponse)
def parse_formula(payload: ExpressionParseRequest) -> ExpressionParseResponse:
    """Parse a formula and return its AST, or the reasons it was rejected."""

    errors: List[str] = []
    node = parse_expression(payload.formula, errors)
    if node is None:
        return ExpressionParseResponse(ok=False, errors=errors)
    return ExpressionParseResponse(ok=True, ast=node_to_dict(node))


@router.post("/evaluate", response_model=ExpressionEvaluateResponse)
def evaluate_formula_for_candles(
    payload: ExpressionEvaluateRequest,
    request: Request,
) -> ExpressionEvaluateResponse:
    """Evaluate a formula over the submitted candles.

    Rejected formulas are reported with ok=false rather than an HTTP error.
    """

    analysis = build_trade_analysis(candles_to_series(payload.candles))
    result = evaluate_formula(payload.formula, analysis)
    if not result.ok:
        log_with_correlation(
            logger,
            request,
            logging.INFO,
            "Formula rejected",
            formula=payload.formula,
            errors=result.errors,
        )
        return ExpressionEvaluateResponse(ok=False, errors=result.errors)
    return ExpressionEvaluateResponse(ok=True, values=result.values)


@router.get("/defaults", response_model=List[CustomSeriesRead])
def list_default_series() -> List[CustomSeriesRead]:
    return [
        CustomSeriesRead(title=s.title, formula=s.formula, height=s.height)
        for s in default_custom_series()
    ]


__all__ = ["router"]
