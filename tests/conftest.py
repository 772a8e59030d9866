"""
Pytest configuration and shared fixtures.
"""

import numpy as np
import pytest
from typer.testing import CliRunner

from qtcoal.core.matrix import uniform_jump_matrix
from qtcoal.core.tree import Leaf, Node
from qtcoal.inference.runtime import InferenceRuntime
from qtcoal.models.dynamics import ModelDynamics


class RecordingRuntime(InferenceRuntime):
    """Runtime that records every call and serves fixed draws."""

    def __init__(self, draws=None):
        self.draws = list(draws) if draws is not None else []
        self.samples = []
        self.deltas = []
        self.events = []
        self.n_checkpoints = 0

    def sample(self, distribution, size=None):
        self.samples.append((distribution, size))
        self.events.append("sample")
        return self.draws.pop(0)

    def adjust_weight(self, log_delta):
        self.deltas.append(log_delta)
        self.events.append("adjust")

    def resampling_checkpoint(self):
        self.n_checkpoints += 1
        self.events.append("checkpoint")


def make_dynamics(
    molecular_generator=None,
    character_generator=None,
    jump_rate=0.0,
    n_character_states=2,
    emission_table=None,
):
    """Build dynamics with zero generators unless given."""
    if molecular_generator is None:
        molecular_generator = np.zeros((4, 4))
    if character_generator is None:
        character_generator = np.zeros((n_character_states, n_character_states))
    n_char = character_generator.shape[0]
    if emission_table is None:
        emission_table = np.eye(n_char)
    return ModelDynamics(
        molecular_generator=molecular_generator,
        molecular_jump=uniform_jump_matrix(4),
        character_generator=character_generator,
        character_jump=uniform_jump_matrix(n_char),
        jump_rate=jump_rate,
        emission_table=emission_table,
    )


def jc_generator(rate=1.0):
    """JC69 generator normalised to ``rate`` expected changes per unit time."""
    Q = np.full((4, 4), 1.0 / 3.0)
    np.fill_diagonal(Q, -1.0)
    return Q * rate


@pytest.fixture
def dynamics_factory():
    """Factory building dynamics from optional generators and rates."""
    return make_dynamics


@pytest.fixture
def recording_runtime():
    """Runtime recording samples, weight adjustments and checkpoints."""
    return RecordingRuntime()


@pytest.fixture
def zero_dynamics():
    """Dynamics with zero generators and no jumps."""
    return make_dynamics()


@pytest.fixture
def jc_dynamics():
    """JC69 molecular process, two-state character process, no jumps."""
    Qc = np.array([[-0.5, 0.5], [0.5, -0.5]])
    return make_dynamics(molecular_generator=jc_generator(1.0), character_generator=Qc)


@pytest.fixture
def jump_dynamics():
    """JC69 molecular process with a non-zero compound jump rate."""
    Qc = np.array([[-0.5, 0.5], [0.5, -0.5]])
    return make_dynamics(
        molecular_generator=jc_generator(1.0), character_generator=Qc, jump_rate=3.0
    )


@pytest.fixture
def two_leaf_tree():
    """Two leaves at age 0 with identical states, parent at age 1."""
    a = Leaf(index=0, character_state=0, sequence=np.array([0]), age=0.0)
    b = Leaf(index=1, character_state=0, sequence=np.array([0]), age=0.0)
    return Node(a, b, 1.0)


@pytest.fixture
def balanced_tree():
    """((0,1):1,(2,3):0.5):2 with three sites."""
    leaves = [
        Leaf(index=0, character_state=0, sequence=np.array([0, 1, 2]), age=0.0),
        Leaf(index=1, character_state=0, sequence=np.array([0, 1, 3]), age=0.0),
        Leaf(index=2, character_state=1, sequence=np.array([0, 2, 2]), age=0.0),
        Leaf(index=3, character_state=1, sequence=np.array([1, 1, 2]), age=0.0),
    ]
    left = Node(leaves[0], leaves[1], 1.0)
    right = Node(leaves[2], leaves[3], 0.5)
    return Node(left, right, 2.0)


@pytest.fixture
def data_files(tmp_path):
    """Tree, alignment and trait files for a four-taxon dataset."""
    tree_file = tmp_path / "tree.nwk"
    tree_file.write_text("((human:0.1,chimp:0.1):0.3,(mouse:0.25,rat:0.25):0.15);\n")

    alignment_file = tmp_path / "alignment.fasta"
    alignment_file.write_text(
        ">human\nACGTACGTAC\n"
        ">chimp\nACGTACGTAA\n"
        ">mouse\nACGAACTTAC\n"
        ">rat\nACGAACTTGC\n"
    )

    traits_file = tmp_path / "traits.tsv"
    traits_file.write_text("# name\tstate\nhuman\t0\nchimp\t0\nmouse\t1\nrat\t1\n")

    return {"tree": tree_file, "alignment": alignment_file, "traits": traits_file}


@pytest.fixture
def cli_runner():
    """CLI test runner for Typer apps."""
    return CliRunner()
