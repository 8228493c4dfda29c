"""Build networks from configuration mappings and run derivative passes on them."""

from __future__ import annotations

import json
from copy import deepcopy
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping

from ..core import activations
from ..core.network import ConnectionKind, Layer, LayerRole, NetworkGraph
from ..core.randomize import make_randomizer
from ..core.types import GradientResult, JacobianResult
from ..data.dataset import BasicTrainingSet
from ..reporting.artifacts import write_manifest
from ..reporting.metrics import CsvSink, JsonlSink
from .jacobian import JacobianBuilder
from .propagation import compute_gradients

_PRESETS: Dict[str, Mapping[str, object]] = {
    "xor": {
        "layers": [
            {"name": "input", "neurons": 2, "role": "input"},
            {"name": "hidden", "neurons": 3, "activation": "sigmoid"},
            {"name": "output", "neurons": 1, "role": "output", "activation": "sigmoid"},
        ],
        "connections": [
            {"from": "input", "to": "hidden", "kind": "weighted"},
            {"from": "hidden", "to": "output", "kind": "weighted"},
        ],
        "randomize": {"kind": "range", "low": -1.0, "high": 1.0, "seed": 7},
        "data": {
            "inputs": [[0.0, 0.0], [1.0, 0.0], [0.0, 1.0], [1.0, 1.0]],
            "ideals": [[0.0], [1.0], [1.0], [0.0]],
        },
    },
    "elman": {
        "layers": [
            {"name": "input", "neurons": 1, "role": "input"},
            {"name": "hidden", "neurons": 4, "activation": "tanh"},
            {"name": "output", "neurons": 1, "role": "output", "activation": "linear"},
        ],
        "connections": [
            {"from": "input", "to": "hidden", "kind": "weighted"},
            {"from": "hidden", "to": "hidden", "kind": "context"},
            {"from": "hidden", "to": "output", "kind": "weighted"},
        ],
        "randomize": {"kind": "range", "low": -0.5, "high": 0.5, "seed": 11},
        "data": {
            "inputs": [[0.0], [0.5], [1.0], [0.5], [0.0]],
            "ideals": [[0.5], [1.0], [0.5], [0.0], [0.5]],
        },
    },
    "passthrough": {
        "layers": [
            {"name": "input", "neurons": 3, "role": "input"},
            {
                "name": "output",
                "neurons": 3,
                "role": "output",
                "activation": "linear",
                "bias": False,
            },
        ],
        "connections": [{"from": "input", "to": "output", "kind": "one_to_one"}],
    },
}


def _read_config_file(path: Path) -> Mapping[str, object]:
    text = path.read_text()
    suffix = path.suffix.lower()
    if suffix in {".yaml", ".yml"}:
        import yaml

        data = yaml.safe_load(text) or {}
    elif suffix == ".json":
        data = json.loads(text or "{}")
    else:
        raise ValueError(f"Unsupported config file type: {path.suffix}")

    if not isinstance(data, Mapping):
        raise TypeError(f"Config {path.name} must decode to a mapping")
    return data


def load_config(path: str | Path) -> Mapping[str, object]:
    data = _read_config_file(Path(path))
    missing = {"layers", "connections"} - set(data)
    if missing:
        missing_str = ", ".join(sorted(missing))
        raise KeyError(f"Config {Path(path).name} is missing required sections: {missing_str}")
    return data


def presets() -> Mapping[str, Mapping[str, object]]:
    return {name: deepcopy(cfg) for name, cfg in _PRESETS.items()}


def load_preset(name: str) -> Mapping[str, object]:
    try:
        return deepcopy(_PRESETS[name])
    except KeyError as exc:
        raise KeyError(f"Unknown preset: {name}") from exc


def _build_activation(entry: object) -> activations.ActivationFunction:
    if isinstance(entry, Mapping):
        params = {k: float(v) for k, v in entry.items() if k != "name"}
        return activations.REGISTRY.resolve(str(entry["name"]), **params)
    return activations.REGISTRY.resolve(str(entry))


def build_network(config: Mapping[str, object]) -> NetworkGraph:
    """Create a :class:`NetworkGraph` from ``layers`` and ``connections`` entries.

    Layers default to the hidden role; the input layer defaults to the
    identity activation and every other layer to sigmoid. ``randomize``, when
    present, names a randomizer and its options.
    """

    graph = NetworkGraph()
    for entry in config["layers"]:  # type: ignore[union-attr]
        role = LayerRole(str(entry.get("role", "hidden")))
        default_act = "identity" if role is LayerRole.INPUT else "sigmoid"
        graph.add_layer(
            Layer(
                name=str(entry["name"]),
                neuron_count=int(entry["neurons"]),
                activation=_build_activation(entry.get("activation", default_act)),
                role=role,
                has_bias=entry.get("bias"),
            )
        )
    for entry in config["connections"]:  # type: ignore[union-attr]
        kind = str(entry.get("kind", "weighted")).lower().replace("-", "_")
        try:
            conn_kind = ConnectionKind(kind)
        except ValueError as exc:
            raise ValueError(f"Unknown connection kind: {entry.get('kind')}") from exc
        graph.connect(graph.layer(str(entry["from"])), graph.layer(str(entry["to"])), conn_kind)
    graph.validate()

    randomize_cfg = config.get("randomize")
    if randomize_cfg:
        options = dict(randomize_cfg)  # type: ignore[arg-type]
        make_randomizer(str(options.pop("kind", "range")), **options).randomize(graph)
    return graph


def describe_network(graph: NetworkGraph) -> Dict[str, Any]:
    return {
        "layers": [
            {
                "name": layer.name,
                "neurons": layer.neuron_count,
                "role": layer.role.value,
                "activation": layer.activation.name,
                "bias": layer.bias is not None,
            }
            for layer in graph.layers
        ],
        "connections": [
            {"from": c.source.name, "to": c.destination.name, "kind": c.kind.value}
            for c in graph.connections
        ],
        "parameters": graph.parameter_count(),
    }


@dataclass(frozen=True)
class PipelineResult:
    graph: NetworkGraph
    gradients: GradientResult
    jacobian: JacobianResult
    metrics_path: str = ""
    manifest_path: str = ""


def run_pipeline(config: Mapping[str, object]) -> PipelineResult:
    """Build, randomize and differentiate the network described by ``config``.

    ``data`` supplies ``inputs`` and ``ideals``. ``run`` may set ``workers``
    and ``run_dir``; with a ``run_dir`` metrics and a manifest are written.
    """

    if "data" not in config:
        raise KeyError("Pipeline config is missing required section: data")
    graph = build_network(config)
    data_cfg = dict(config["data"])  # type: ignore[arg-type]
    training = BasicTrainingSet(data_cfg["inputs"], data_cfg["ideals"])
    run_cfg = dict(config.get("run", {}))  # type: ignore[arg-type]
    workers = int(run_cfg.get("workers", 1))

    callbacks: List[object] = []
    run_dir = run_cfg.get("run_dir")
    jsonl = None
    if run_dir is not None:
        run_dir = Path(str(run_dir))
        run_dir.mkdir(parents=True, exist_ok=True)
        jsonl = JsonlSink(run_dir / "metrics.jsonl")
        callbacks = [jsonl, CsvSink(run_dir / "metrics.csv")]

    gradients = compute_gradients(graph, training, callbacks=[])
    graph.state.reset()
    jacobian = JacobianBuilder(graph, training, workers=workers, callbacks=callbacks).calculate()

    manifest_path = ""
    if run_dir is not None:
        manifest_path = write_manifest(
            run_dir / "manifest.json",
            config=json.loads(json.dumps(config)),
            network=describe_network(graph),
        )
    return PipelineResult(
        graph=graph,
        gradients=gradients,
        jacobian=jacobian,
        metrics_path=str(jsonl.path) if jsonl is not None else "",
        manifest_path=manifest_path,
    )


__all__ = [
    "PipelineResult",
    "build_network",
    "describe_network",
    "load_config",
    "load_preset",
    "presets",
    "run_pipeline",
]
