"""FastAPI-based web interface for the PPCP tracker."""

from __future__ import annotations

import secrets
from datetime import date
from pathlib import Path
from typing import Any, Dict, Mapping, Optional
from urllib.parse import urlencode

from fastapi import FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import RedirectResponse, Response
from fastapi.templating import Jinja2Templates
from starlette.middleware.sessions import SessionMiddleware

from ..config import Settings
from ..domain import (
    DATE_FIELDS,
    PRIORITY_SEQUENCE,
    STATUS_SEQUENCE,
    Entry,
    EntryValidationError,
    YesNo,
    entry_fields,
)
from ..interchange import WORKBOOK_FILENAME, InterchangeError, format_display_date
from ..reports import ALL_STATUSES, OVERDUE_CHARTS, priority_style, resolve_status_filter
from ..repository import RecordNotFoundError
from ..services import AuthenticationError, Credentials, PPCPService
from ..storage import PPCPDatabase

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"
templates = Jinja2Templates(directory=str(TEMPLATES_DIR))
templates.env.filters["display_date"] = format_display_date
templates.env.globals["priority_style"] = priority_style

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
SESSION_COOKIE = "ppcp_session"
# per-client login flag, kept in the signed session cookie
AUTH_SESSION_KEY = "ppcp_auth"

FORM_FIELDS = (
    "order_code",
    "part_number",
    "external_code",
    "priority",
    *DATE_FIELDS,
    "has_control_document",
    "control_document_number",
    "has_follow_sheet",
    "status",
)

DEFAULT_FORM_VALUES: Dict[str, str] = {
    "has_control_document": YesNo.NO.value,
    "has_follow_sheet": YesNo.NO.value,
    "status": STATUS_SEQUENCE[0].value,
    "priority": PRIORITY_SEQUENCE[-1].value,
}


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    database = PPCPDatabase(settings.db_path)
    service = PPCPService(
        database.entries,
        credentials=Credentials(settings.username, settings.password),
    )

    app = FastAPI(title="Sistema PPCP")
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.secret_key or secrets.token_hex(32),
        session_cookie=SESSION_COOKIE,
        same_site="lax",
    )
    app.state.ppcp_service = service
    app.state.database = database

    @app.on_event("shutdown")
    async def shutdown_event() -> None:  # pragma: no cover - framework hook
        database.close()

    @app.get("/login")
    async def login_page(request: Request):
        if is_logged_in(request):
            return RedirectResponse("/", status_code=303)
        return templates.TemplateResponse(request, "login.html", {"error": None})

    @app.post("/login")
    async def login(
        request: Request,
        username: str = Form(""),
        password: str = Form(""),
    ):
        service: PPCPService = request.app.state.ppcp_service
        try:
            service.login(username, password)
        except AuthenticationError as exc:
            return templates.TemplateResponse(
                request,
                "login.html",
                {"error": str(exc), "username": username},
                status_code=401,
            )
        request.session[AUTH_SESSION_KEY] = True
        return RedirectResponse("/", status_code=303)

    @app.post("/logout")
    async def logout(request: Request):
        request.session.clear()
        return RedirectResponse("/login", status_code=303)

    @app.get("/")
    async def dashboard(request: Request):
        service: PPCPService = request.app.state.ppcp_service
        if not is_logged_in(request):
            return RedirectResponse("/login", status_code=303)
        query = request.query_params
        selected = resolve_status_filter(query.get("status", ALL_STATUSES))
        show_charts = query.get("charts") == "1"
        return templates.TemplateResponse(
            request,
            "dashboard.html",
            {
                "entries": service.visible_entries(selected),
                "statuses": STATUS_SEQUENCE,
                "selected_status": selected.value if selected else ALL_STATUSES,
                "all_statuses": ALL_STATUSES,
                "show_charts": show_charts,
                "charts": service.chart_data() if show_charts else None,
                "overdue_titles": OVERDUE_CHARTS,
                "message": query.get("message"),
                "error": query.get("error"),
            },
        )

    @app.get("/entries/new")
    async def new_entry_form(request: Request):
        service: PPCPService = request.app.state.ppcp_service
        if not is_logged_in(request):
            return RedirectResponse("/login", status_code=303)
        return render_entry_form(request, None, dict(DEFAULT_FORM_VALUES), {})

    @app.post("/entries")
    async def create_entry(request: Request):
        service: PPCPService = request.app.state.ppcp_service
        if not is_logged_in(request):
            return RedirectResponse("/login", status_code=303)
        values = await read_entry_form(request)
        try:
            service.create_entry(values)
        except EntryValidationError as exc:
            return render_entry_form(request, None, values, exc.errors, status_code=400)
        return RedirectResponse("/", status_code=303)

    @app.get("/entries/{entry_id}/edit")
    async def edit_entry_form(entry_id: str, request: Request):
        service: PPCPService = request.app.state.ppcp_service
        if not is_logged_in(request):
            return RedirectResponse("/login", status_code=303)
        try:
            entry = service.get_entry(entry_id)
        except RecordNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return render_entry_form(request, entry, form_values(entry), {})

    @app.post("/entries/{entry_id}")
    async def update_entry(entry_id: str, request: Request):
        service: PPCPService = request.app.state.ppcp_service
        if not is_logged_in(request):
            return RedirectResponse("/login", status_code=303)
        values = await read_entry_form(request)
        try:
            service.update_entry(entry_id, values)
        except RecordNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except EntryValidationError as exc:
            entry = service.get_entry(entry_id)
            return render_entry_form(request, entry, values, exc.errors, status_code=400)
        return RedirectResponse("/", status_code=303)

    @app.post("/entries/{entry_id}/delete")
    async def delete_entry(entry_id: str, request: Request):
        service: PPCPService = request.app.state.ppcp_service
        if not is_logged_in(request):
            return RedirectResponse("/login", status_code=303)
        try:
            service.delete_entry(entry_id)
        except RecordNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return RedirectResponse("/", status_code=303)

    @app.get("/export")
    async def export_workbook(request: Request):
        service: PPCPService = request.app.state.ppcp_service
        if not is_logged_in(request):
            return RedirectResponse("/login", status_code=303)
        return Response(
            content=service.export_workbook(),
            media_type=XLSX_MEDIA_TYPE,
            headers=attachment_headers(WORKBOOK_FILENAME),
        )

    @app.post("/import")
    async def import_workbook(request: Request, file: UploadFile = File(...)):
        service: PPCPService = request.app.state.ppcp_service
        if not is_logged_in(request):
            return RedirectResponse("/login", status_code=303)
        content = await file.read()
        try:
            result = service.import_workbook(content)
        except InterchangeError as exc:
            return redirect_with({"error": f"Falha ao importar planilha: {exc}"})
        message = f"{len(result.entries)} registros importados"
        if result.rejected:
            rows = ", ".join(str(rejection.row_number) for rejection in result.rejected)
            message += f"; linhas rejeitadas: {rows}"
        return redirect_with({"message": message})

    @app.get("/backup")
    async def backup(request: Request):
        service: PPCPService = request.app.state.ppcp_service
        if not is_logged_in(request):
            return RedirectResponse("/login", status_code=303)
        filename, payload = service.backup()
        return Response(
            content=payload.encode("utf-8"),
            media_type="application/json",
            headers=attachment_headers(filename),
        )

    @app.post("/restore")
    async def restore(request: Request, file: UploadFile = File(...)):
        service: PPCPService = request.app.state.ppcp_service
        if not is_logged_in(request):
            return RedirectResponse("/login", status_code=303)
        content = await file.read()
        try:
            count = service.restore(content)
        except InterchangeError as exc:
            return redirect_with(
                {"error": f"Erro ao restaurar backup. Arquivo inválido. ({exc})"}
            )
        return redirect_with({"message": f"{count} registros restaurados"})

    return app


def is_logged_in(request: Request) -> bool:
    return request.session.get(AUTH_SESSION_KEY) is True


async def read_entry_form(request: Request) -> Dict[str, str]:
    form = await request.form()
    values: Dict[str, str] = {}
    for name in FORM_FIELDS:
        raw = form.get(name)
        values[name] = raw.strip() if isinstance(raw, str) else ""
    return values


def form_values(entry: Entry) -> Dict[str, str]:
    values: Dict[str, str] = {}
    for name, value in entry_fields(entry).items():
        if isinstance(value, date):
            values[name] = value.isoformat()
        elif hasattr(value, "value"):
            values[name] = value.value
        else:
            values[name] = str(value)
    return values


def render_entry_form(
    request: Request,
    entry: Optional[Entry],
    values: Mapping[str, Any],
    errors: Mapping[str, str],
    *,
    status_code: int = 200,
):
    return templates.TemplateResponse(
        request,
        "entry_form.html",
        {
            "entry": entry,
            "values": values,
            "errors": errors,
            "statuses": STATUS_SEQUENCE,
            "priorities": PRIORITY_SEQUENCE,
            "yes_no": tuple(YesNo),
            "date_fields": DATE_FIELDS,
        },
        status_code=status_code,
    )


def attachment_headers(filename: str) -> Dict[str, str]:
    return {"Content-Disposition": f'attachment; filename="{filename}"'}


def redirect_with(params: Mapping[str, str]) -> RedirectResponse:
    return RedirectResponse("/?" + urlencode(params), status_code=303)
