"""CLI entry point: z-dict2file.

Subcommands:
    z-dict2file run prog.ll [more.ll ...]   # Append comparison literals to $AFL_LLVM_DICT2FILE
    z-dict2file show prog.ll                # List comparison sites, write nothing
"""

from __future__ import annotations

import sys

import click

from z_fuzz_dict.config import PassConfig
from z_fuzz_dict.core.logging import setup_logging
from z_fuzz_dict.driver import Dict2FilePass, iter_compare_sites
from z_fuzz_dict.exceptions import Dict2FileError
from z_fuzz_dict.ir.parser import read_module


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Verbose logging")
@click.option(
    "--log-format",
    type=click.Choice(["console", "json"]),
    default=None,
    help="Log renderer (default: $Z_DICT2FILE_LOG_FORMAT or console)",
)
def main(verbose: bool, log_format: str | None) -> None:
    """z-dict2file: build a fuzzing dictionary from string comparisons in LLVM IR."""
    setup_logging("DEBUG" if verbose else None, log_format)


@main.command()
@click.argument("ir_files", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option("--dict-file", default=None, help="Dictionary path (default: $AFL_LLVM_DICT2FILE)")
@click.option("--min-length", type=int, default=None, help="Shortest token kept (default: 3)")
@click.option("--max-length", type=int, default=None, help="Longest token kept (default: 32)")
@click.option("--debug", is_flag=True, help="Log every site (like AFL_DEBUG)")
@click.option("--quiet", is_flag=True, help="No per-token output (like AFL_QUIET)")
def run(
    ir_files: tuple[str, ...],
    dict_file: str | None,
    min_length: int | None,
    max_length: int | None,
    debug: bool | None,
    quiet: bool | None,
) -> None:
    """Run the dictionary pass over each IR file (one translation unit each)."""
    try:
        config = PassConfig.from_env(
            dict_file=dict_file,
            min_length=min_length,
            max_length=max_length,
            debug=debug or None,
            quiet=quiet or None,
        )
        dict_pass = Dict2FilePass(config)
        for ir_file in ir_files:
            module = read_module(ir_file)
            result = dict_pass.run(module)
            click.echo(
                f"{ir_file}: {result.found} entries "
                f"({result.call_sites} comparison sites, "
                f"{result.functions_scanned} functions scanned, "
                f"{result.functions_skipped} skipped)"
            )
    except Dict2FileError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(f"Dictionary: {config.dict_file}")


@main.command()
@click.argument("ir_file", type=click.Path(exists=True, dir_okay=False))
def show(ir_file: str) -> None:
    """List the comparison sites of an IR file without writing anything."""
    try:
        module = read_module(ir_file)
    except Dict2FileError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    count = 0
    for site in iter_compare_sites(module):
        count += 1
        resolved = " ".join(
            f"arg{i}={op.provenance.value}:{op.data!r}" if op is not None else f"arg{i}=?"
            for i, op in enumerate(site.operands)
        )
        click.echo(f"  {site.function}:{site.line} {site.callee} [{site.kind.value}] {resolved}")
    click.echo(f"{count} comparison sites in {ir_file}")


if __name__ == "__main__":
    main()
