"""The dictionary pass: walk a module and append every recovered comparison literal.

A run opens the dictionary once, visits each function that is neither a
declaration nor on the denylist, and looks at every call in program order:

* ``llvm.memcpy`` of a constant string into a local buffer records the
  buffer's content, so a later ``strcmp(buf, input)`` can be resolved;
* a comparison with exactly one operand known at compile time yields one
  dictionary entry.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass

import structlog

from z_fuzz_dict.analysis.classifier import CallKind, classify, constant_length
from z_fuzz_dict.analysis.normalizer import normalize
from z_fuzz_dict.analysis.resolver import ConstantStringResolver, Provenance, ResolvedString
from z_fuzz_dict.analysis.tracker import LocalBufferTracker
from z_fuzz_dict.config import PassConfig
from z_fuzz_dict.core.logging import ensure_logging
from z_fuzz_dict.denylist import FunctionDenylist
from z_fuzz_dict.ir.models import CallInstruction, Module, Value, describe
from z_fuzz_dict.writer import DictionaryWriter

log = structlog.get_logger("z_fuzz_dict.driver")


@dataclass
class PassResult:
    found: int = 0  # entries written
    functions_scanned: int = 0
    functions_skipped: int = 0
    call_sites: int = 0  # comparison sites seen


@dataclass
class CompareSite:
    """A comparison call with both operands run through the resolver."""

    function: str
    call: CallInstruction
    kind: CallKind
    operands: tuple[ResolvedString | None, ResolvedString | None]
    declared_length: int | None = None
    line: int = 0

    @property
    def callee(self) -> str:
        return self.call.callee_name

    @property
    def candidate(self) -> ResolvedString | None:
        """The single resolved operand; None when both or neither resolved."""
        first, second = self.operands
        if (first is None) == (second is None):
            return None
        return first if first is not None else second


def iter_compare_sites(
    module: Module,
    denylist: FunctionDenylist | None = None,
    tracker: LocalBufferTracker | None = None,
    resolver: ConstantStringResolver | None = None,
    result: PassResult | None = None,
    debug: bool = False,
) -> Iterator[CompareSite]:
    """Yield the comparison sites of *module* in program order.

    Copy sites are consumed here and only update *tracker*; they are never
    yielded. Function counters are accumulated into *result* if given.
    """
    ensure_logging()
    denylist = denylist if denylist is not None else FunctionDenylist()
    tracker = tracker if tracker is not None else LocalBufferTracker()
    resolver = resolver if resolver is not None else ConstantStringResolver()
    result = result if result is not None else PassResult()

    for fn in module.iter_functions():
        if fn.is_declaration:
            continue
        if denylist.is_ignored(fn):
            result.functions_skipped += 1
            continue
        result.functions_scanned += 1

        for inst in fn.instructions():
            kind = classify(inst)
            if kind is None:
                continue

            if kind is CallKind.MEMCPY:
                _record_copy(inst, resolver, tracker, debug)
                continue

            result.call_sites += 1
            first = resolver.resolve(inst.args[0], tracker)
            second = resolver.resolve(inst.args[1], tracker)
            if debug:
                log.debug(
                    "dict2file.site",
                    function=fn.name,
                    callee=inst.callee_name,
                    arg0=describe(inst.args[0]),
                    arg0_resolved=first is not None,
                    arg1=describe(inst.args[1]),
                    arg1_resolved=second is not None,
                )
                for operand, resolved in ((inst.args[0], first), (inst.args[1], second)):
                    if resolved is not None and resolved.provenance is Provenance.TRACKED_LOCAL:
                        log.debug("dict2file.filled", operand=describe(operand), value=resolved.data)

            yield CompareSite(
                function=fn.name,
                call=inst,
                kind=kind,
                operands=(first, second),
                declared_length=constant_length(inst, kind),
                line=inst.line,
            )


def _record_copy(
    call: CallInstruction,
    resolver: ConstantStringResolver,
    tracker: LocalBufferTracker,
    debug: bool,
) -> None:
    destination: Value = call.args[0]
    source = resolver.resolve(call.args[1])
    if source is None:
        return
    data = tracker.record_copy(destination, source.data, constant_length(call, CallKind.MEMCPY))
    if debug:
        log.debug("dict2file.saved", buffer=describe(destination), value=data)


class Dict2FilePass:
    """One configured pass; ``run`` may be called once per module."""

    def __init__(self, config: PassConfig, denylist: FunctionDenylist | None = None):
        self.config = config
        self.denylist = denylist if denylist is not None else FunctionDenylist()
        self.resolver = ConstantStringResolver()

    def run(self, module: Module) -> PassResult:
        ensure_logging()
        config = self.config
        result = PassResult()
        tracker = LocalBufferTracker()

        with DictionaryWriter() as writer:
            writer.open(config.dict_file)
            for site in iter_compare_sites(
                module,
                denylist=self.denylist,
                tracker=tracker,
                resolver=self.resolver,
                result=result,
                debug=config.debug,
            ):
                candidate = site.candidate
                if candidate is None:
                    continue
                token = normalize(
                    candidate.data,
                    site.kind,
                    site.declared_length,
                    min_length=config.min_length,
                    max_length=config.max_length,
                )
                if token is None:
                    continue
                writer.append(token.line)
                if config.report:
                    log.info(
                        "dict2file.token",
                        callee=site.callee,
                        length=token.logical_length,
                        emitted=len(token.data),
                        token=token.line.rstrip("\n"),
                    )
            result.found = writer.found

        if config.report:
            if result.found:
                log.info("dict2file.wrote", entries=result.found, path=config.dict_file)
            else:
                log.info("dict2file.none_found", path=config.dict_file)
        return result


def run_pass(
    module: Module,
    config: PassConfig | None = None,
    denylist: FunctionDenylist | None = None,
) -> PassResult:
    """Run the pass over *module*, reading the configuration from the environment if not given."""
    if config is None:
        config = PassConfig.from_env()
    return Dict2FilePass(config, denylist).run(module)
