"""Unit tests for portal and article scraping (HTML fixtures, no network)"""

from __future__ import annotations

import pytest
import requests

from rsmnews.news import sources as sources_module
from rsmnews.news.sources import (
    SourceError,
    fetch_article_detail,
    fetch_portal_candidates,
    normalize_url,
    parse_article_html,
    parse_portal_html,
    portal_name,
)

PORTAL = "https://www.diario.com.ar"

PORTAL_HTML = """
<html><head><title>Diario</title></head><body>
<header><a href="/institucional/quienes-somos-y-staff">Quiénes somos y staff del diario</a></header>
<article class="card">
  <h2><a href="/politica/2025/03/10/el-congreso-aprobo-la-ley">El Congreso aprobó la ley de presupuesto</a></h2>
  <p>La votación terminó de madrugada con amplia mayoría.</p>
</article>
<div class="story">
  <h3>Suba récord del dólar blue en la city porteña</h3>
  <a href="https://www.diario.com.ar/economia/dolar-blue">Leer más</a>
  <p class="summary">El paralelo cerró a 1200 pesos.</p>
</div>
<a href="/tag/presidente">Todas las noticias sobre el presidente</a>
<a href="https://otro.com/nota-externa">Una nota de otro portal que no se toma</a>
<a href="/deportes/boca#comentarios">Boca ganó el superclásico en la Bombonera</a>
<a href="/corto">Corto</a>
<a href="/politica/2025/03/10/el-congreso-aprobo-la-ley">El Congreso aprobó la ley (repetido)</a>
</body></html>
"""

PARAGRAPH = "El índice de precios al consumidor mostró una desaceleración respecto del mes anterior según el INDEC."

ARTICLE_HTML = f"""
<html><head><title>Otro título | Diario</title></head><body>
<nav><p>Menú de navegación con enlaces a todas las secciones del diario</p></nav>
<h1>Inflación de febrero: 2,4% - Diario</h1>
<article>
  <p>Corto.</p>
  <p>{PARAGRAPH}</p>
  <p>{PARAGRAPH}</p>
  <p>{PARAGRAPH}</p>
  <form><p>Suscribite al newsletter para recibir todas las novedades</p></form>
</article>
<footer><p>Todos los derechos reservados por la editorial del diario</p></footer>
</body></html>
"""


class FakeResponse:
    def __init__(self, text: str = "", status_code: int = 200):
        self.text = text
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error")


class FakeSession:
    def __init__(self, response: FakeResponse | None = None, exc: Exception | None = None):
        self.response = response
        self.exc = exc
        self.requests: list[tuple[str, dict, float]] = []

    def get(self, url, headers=None, timeout=None):
        self.requests.append((url, headers, timeout))
        if self.exc is not None:
            raise self.exc
        return self.response


def test_portal_name_and_url_normalization():
    assert portal_name("https://www.infobae.com/") == "infobae.com"
    assert portal_name("https://tn.com.ar") == "tn.com.ar"
    assert normalize_url("/nota", PORTAL) == f"{PORTAL}/nota"
    assert normalize_url("//cdn.diario.com.ar/x", PORTAL) == "https://cdn.diario.com.ar/x"
    assert normalize_url("nota", PORTAL) == f"{PORTAL}/nota"
    assert normalize_url("https://x.com/a", PORTAL) == "https://x.com/a"
    assert normalize_url("", PORTAL) is None


def test_parse_portal_html_filters_links():
    candidates = parse_portal_html(PORTAL_HTML, PORTAL)

    assert [(c.url, c.title) for c in candidates] == [
        (f"{PORTAL}/politica/2025/03/10/el-congreso-aprobo-la-ley", "El Congreso aprobó la ley de presupuesto"),
        (f"{PORTAL}/economia/dolar-blue", "Suba récord del dólar blue en la city porteña"),
    ]
    assert candidates[0].excerpt == "La votación terminó de madrugada con amplia mayoría."
    assert candidates[1].excerpt == "El paralelo cerró a 1200 pesos."
    assert {c.portal for c in candidates} == {"diario.com.ar"}


def test_parse_portal_html_caps_candidates(monkeypatch):
    monkeypatch.setattr(sources_module, "PORTAL_MAX_CANDIDATES", 3)
    links = "".join(
        f'<a href="/nota-{i}">Titular numero {i} de la portada de hoy</a>' for i in range(10)
    )

    candidates = parse_portal_html(f"<html><body>{links}</body></html>", PORTAL)

    assert [c.url for c in candidates] == [f"{PORTAL}/nota-{i}" for i in range(3)]


def test_fetch_portal_candidates_uses_browser_headers():
    session = FakeSession(FakeResponse(PORTAL_HTML))

    candidates = fetch_portal_candidates(PORTAL, session=session, timeout=45)

    assert len(candidates) == 2
    url, headers, timeout = session.requests[0]
    assert url == PORTAL
    assert "Mozilla" in headers["User-Agent"]
    assert timeout == 45


@pytest.mark.parametrize(
    "session",
    [
        FakeSession(exc=requests.Timeout("read timeout")),
        FakeSession(exc=requests.ConnectionError("refused")),
        FakeSession(FakeResponse(status_code=503)),
    ],
)
def test_fetch_portal_candidates_raises_source_error(session):
    with pytest.raises(SourceError):
        fetch_portal_candidates(PORTAL, session=session)


def test_parse_article_html_extracts_title_and_paragraphs():
    detail = parse_article_html(ARTICLE_HTML, f"{PORTAL}/economia/inflacion")

    assert detail.ok
    assert detail.title == "Inflación de febrero: 2,4%"
    assert detail.content == "\n\n".join([PARAGRAPH] * 3)
    assert "newsletter" not in detail.content
    assert "derechos" not in detail.content


def test_parse_article_html_falls_back_to_body_text():
    html = """<html><body><h1>Título</h1><p>Corto.</p>
    <div>Texto suelto en un div sin párrafos que igual sirve como contenido</div></body></html>"""

    detail = parse_article_html(html, f"{PORTAL}/x")

    assert detail.ok
    assert "Texto suelto en un div" in detail.content


def test_parse_article_html_uses_og_title():
    html = """<html><head><meta property="og:title" content="Título desde OG | Diario"></head>
    <body><p>Contenido breve.</p></body></html>"""

    assert parse_article_html(html, f"{PORTAL}/x").title == "Título desde OG"


def test_parse_article_html_without_text_is_an_error():
    detail = parse_article_html("<html><body></body></html>", f"{PORTAL}/x")

    assert not detail.ok
    assert detail.error == "No article text found"


@pytest.mark.parametrize(
    "session",
    [
        FakeSession(exc=requests.Timeout("read timeout")),
        FakeSession(FakeResponse(status_code=404)),
    ],
)
def test_fetch_article_detail_never_raises(session):
    detail = fetch_article_detail(f"{PORTAL}/x", session=session)

    assert not detail.ok
    assert detail.error


def test_fetch_article_detail_success():
    detail = fetch_article_detail(f"{PORTAL}/x", session=FakeSession(FakeResponse(ARTICLE_HTML)))

    assert detail.ok
    assert detail.url == f"{PORTAL}/x"
