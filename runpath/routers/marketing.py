from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse

from ..core.jinja import get_templates

router = APIRouter(tags=["marketing"])
templates = get_templates()

PAGES = {
    "/": ("marketing/home.html", "Home"),
    "/about-us": ("marketing/about.html", "About us"),
    "/what-we-do": ("marketing/what_we_do.html", "What we do"),
    "/case-studies": ("marketing/case_studies.html", "Case studies"),
    "/contact": ("marketing/contact.html", "Contact"),
}


def _page(template: str, title: str):
    def view(request: Request):
        return templates.TemplateResponse(request, template, {"page_title": title})

    return view


for path, (template, title) in PAGES.items():
    router.add_api_route(path, _page(template, title), methods=["GET"], response_class=HTMLResponse, include_in_schema=False)
