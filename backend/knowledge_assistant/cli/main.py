"""CLI entrypoint for the knowledge assistant."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Optional

import requests
import typer

app = typer.Typer(name="ka", help="Knowledge Assistant command-line interface")

DEFAULT_HOST = "http://127.0.0.1:8765"


def _resolve_host(override: Optional[str]) -> str:
    if override:
        return override.rstrip("/")
    env_host = os.environ.get("KA_HOST")
    if env_host:
        return env_host.rstrip("/")
    return DEFAULT_HOST


def _request(method: str, path: str, host: Optional[str] = None, **kwargs) -> requests.Response:
    base = _resolve_host(host)
    url = f"{base}{path}"
    resp = requests.request(method, url, timeout=kwargs.pop("timeout", 60), **kwargs)
    if not resp.ok:
        try:
            detail = resp.json()
        except ValueError:
            detail = resp.text
        typer.echo(f"Request failed ({resp.status_code}): {detail}", err=True)
        raise typer.Exit(code=1)
    return resp


def _print(payload: object) -> None:
    typer.echo(json.dumps(payload, indent=2))


@app.command()
def serve(
    port: int = typer.Option(8765, "--port", help="Port to listen on"),
    log_level: str = typer.Option("info", "--log-level", help="uvicorn log level"),
    log_format: str = typer.Option("json", "--log-format", help="json or text"),
) -> None:
    """Run the local HTTP API (bound to localhost only)."""
    import uvicorn

    os.environ["KA_LOG_FORMAT"] = log_format
    os.environ["KA_LOG_LEVEL"] = log_level.upper()
    uvicorn.run("knowledge_assistant.app:app", host="127.0.0.1", port=port, log_level=log_level)


@app.command()
def upload(
    path: Path = typer.Argument(..., help="pdf, txt or md file to add"),
    wait: bool = typer.Option(False, "--wait", help="Return after the document is indexed"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Add a document to the library."""
    resp = _request(
        "POST",
        "/documents",
        host=host,
        json={"path": str(path.expanduser().resolve()), "wait": wait},
        timeout=600 if wait else 60,
    )
    _print(resp.json())


@app.command()
def documents(
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """List documents with their indexing status."""
    resp = _request("GET", "/documents", host=host)
    for doc in resp.json():
        line = f"{doc['id']}  {doc['status']:<8}  {doc['kind']:<3}  {doc['name']}"
        if doc.get("error"):
            line += f"  ({doc['error']})"
        typer.echo(line)


@app.command()
def delete(
    document_id: str = typer.Argument(..., help="Document identifier"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Remove a document and its index entries."""
    resp = _request("DELETE", f"/documents/{document_id}", host=host)
    _print(resp.json())


@app.command()
def rebuild(
    wait: bool = typer.Option(False, "--wait", help="Block until the rebuild finished"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Re-chunk and re-embed every document."""
    resp = _request("POST", "/index/rebuild", host=host, json={"wait": wait}, timeout=3600 if wait else 60)
    _print(resp.json())


@app.command()
def status(
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Show index and embedding model state."""
    index = _request("GET", "/index/status", host=host).json()
    model = _request("GET", "/model/status", host=host).json()
    _print({"index": index, "model": model})


@app.command("init-model")
def init_model(
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Load the embedding model (downloads it on first use)."""
    resp = _request("POST", "/model/init", host=host, timeout=1800)
    _print(resp.json())


@app.command()
def search(
    q: str = typer.Argument(..., help="Query text"),
    k: Optional[int] = typer.Option(None, "--k", help="Number of results to return"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Semantic search over the library."""
    payload: dict[str, object] = {"query": q}
    if k is not None:
        payload["top_k"] = k
    resp = _request("POST", "/search", host=host, json=payload)
    _print(resp.json())


@app.command()
def ask(
    question: str = typer.Argument(..., help="Question to answer from your documents"),
    chat: Optional[str] = typer.Option(None, "--chat", help="Continue an existing chat"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Ask a question and print the answer with its sources."""
    chat_id = chat or _request("POST", "/chats", host=host, json={}).json()["id"]
    resp = _request("POST", f"/chats/{chat_id}/messages", host=host, json={"content": question}, timeout=600)
    answer = resp.json()["assistant_message"]
    typer.echo(answer["content"])
    if answer["sources"]:
        typer.echo("")
        typer.echo("Sources:")
        for idx, source in enumerate(answer["sources"], start=1):
            typer.echo(f"  [{idx}] {source['document_name']} (relevance {source['relevance']:.2f})")
    typer.echo(f"\nchat: {chat_id}")


@app.command()
def chats(
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """List chats, most recent first."""
    resp = _request("GET", "/chats", host=host)
    for item in resp.json():
        typer.echo(f"{item['id']}  {item['updated_at']}  {item['title']}")


if __name__ == "__main__":
    app()
