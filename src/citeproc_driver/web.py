"""FastAPI JSON service for validating styles and rendering documents.

Run with:
    uvicorn citeproc_driver.web:app --reload
"""
from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, List

from fastapi import FastAPI, HTTPException

from .driver import Driver
from .errors import OrderError, StyleValidationError
from .fetcher import StaticResourceFetcher
from .formatter import OutputFormat
from .models import Diagnostic
from .schemas import RenderRequest, ValidateRequest
from .validation import ValidationReporter

app = FastAPI(title="Citeproc Driver", description="Validate CSL styles and render citations")


def _serialize_diagnostics(diagnostics: List[Diagnostic]) -> List[Dict[str, Any]]:
    return [asdict(diagnostic) for diagnostic in diagnostics]


@app.get("/health")
async def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.post("/validate")
async def validate(request: ValidateRequest) -> Dict[str, Any]:
    """Validate a style, locale or module document."""

    diagnostics = ValidationReporter().validate(request.text, request.document_kind)
    return {
        "ok": not any(d.is_error for d in diagnostics),
        "diagnostics": _serialize_diagnostics(diagnostics),
    }


@app.post("/render")
async def render(request: RenderRequest) -> Dict[str, Any]:
    """Render clusters and the bibliography with locales supplied in the request."""

    try:
        output_format = OutputFormat.parse(request.format)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    fetcher = StaticResourceFetcher(locales=request.locales, modules=request.modules)
    try:
        driver = Driver(request.style, fetcher, output_format)
    except StyleValidationError as exc:
        raise HTTPException(
            status_code=422,
            detail={"message": str(exc), "diagnostics": _serialize_diagnostics(exc.diagnostics)},
        ) from exc

    try:
        driver.insert_references(request.reference_objects())
        driver.init_clusters(request.cluster_objects())
        order = request.order_positions()
        if order is not None:
            driver.set_cluster_order(order)
    except OrderError as exc:
        raise HTTPException(status_code=409, detail={"message": str(exc), "ids": exc.ids}) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    report = await driver.fetch_all()
    result = driver.render().to_dict()
    result["fetch_failures"] = [
        {"resource": str(failure.request), "reason": failure.reason} for failure in report.failures
    ]
    result["style_warnings"] = _serialize_diagnostics(driver.warnings)
    return result


def main() -> None:
    """Run the FastAPI app using uvicorn."""

    import uvicorn

    from .config import load_settings
    from .log import configure_logging

    configure_logging(load_settings().log_level)
    uvicorn.run("citeproc_driver.web:app", host="0.0.0.0", port=8000, reload=False)


__all__ = ["app", "main"]
