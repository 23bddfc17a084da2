from __future__ import annotations

import json

import typer

from .config import get_settings, print_effective_config
from .services.presets import PresetNotFoundError, get_entity_preset, invalid_smart_codes, list_presets
from .services.smart_code import SmartCodeError, parse_smart_code, validate_smart_code

app = typer.Typer(help="HERA Universal API: run the server and inspect smart codes and presets.")


@app.command("serve")
def serve(
    host: str | None = typer.Option(None, "--host", help="Bind address (default: HOST)"),
    port: int | None = typer.Option(None, "--port", help="Bind port (default: PORT)"),
    reload: bool = typer.Option(False, "--reload", help="Restart on code changes"),
) -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "hera_api.main:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


@app.command("smart-code")
def smart_code(
    codes: list[str] = typer.Argument(..., help="Smart codes to check"),
) -> None:
    failed = 0
    for code in codes:
        violations = validate_smart_code(code)
        if violations:
            failed += 1
            for v in violations:
                typer.echo(f"INVALID {code}: [{v.code}] {v.message}")
            continue
        try:
            parsed = parse_smart_code(code)
        except SmartCodeError as exc:
            failed += 1
            typer.echo(f"INVALID {code}: {exc}")
            continue
        typer.echo(
            f"OK {code}: domain={parsed.domain} segments={'.'.join(parsed.segments)} version={parsed.version}"
        )
    if failed:
        raise typer.Exit(code=1)


@app.command("presets")
def presets(
    entity_type: str | None = typer.Argument(None, help="Dump one preset as JSON"),
    check: bool = typer.Option(False, "--check", help="Exit 1 if any preset smart code is malformed"),
) -> None:
    if entity_type:
        try:
            preset = get_entity_preset(entity_type)
        except PresetNotFoundError as exc:
            typer.echo(exc.message, err=True)
            raise typer.Exit(code=1) from exc
        typer.echo(json.dumps(preset.to_dict(), indent=2, default=str))
        return

    bad: list[str] = []
    for preset in list_presets():
        typer.echo(
            f"{preset.entity_type:<12} {len(preset.dynamic_fields):>2} fields "
            f"{len(preset.relationships):>2} relationships  {preset.smart_code}"
        )
        bad.extend(invalid_smart_codes(preset))
    if check and bad:
        for code in bad:
            typer.echo(f"[presets] malformed smart code: {code}", err=True)
        raise typer.Exit(code=1)


@app.command("config")
def config(
    show_secrets: bool = typer.Option(False, "--show-secrets", help="Print secrets unredacted"),
) -> None:
    typer.echo(json.dumps(print_effective_config(redact_secrets=not show_secrets), indent=2, default=str))


if __name__ == "__main__":  # pragma: no cover
    app()
