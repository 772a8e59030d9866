"""
Nucleotide alignment parsing.
"""

import re
from dataclasses import dataclass
from pathlib import Path

import numpy as np


# Nucleotide encoding (PAML order)
NUCLEOTIDE_TO_INDEX = {'T': 0, 'C': 1, 'A': 2, 'G': 3, 'U': 0}
INDEX_TO_NUCLEOTIDE = {0: 'T', 1: 'C', 2: 'A', 3: 'G'}

# Gaps, N and IUPAC ambiguity codes
MISSING_CODE = -1


@dataclass
class Alignment:
    """
    Multiple sequence alignment of nucleotides.

    Attributes
    ----------
    names : list[str]
        Sequence names/labels
    sequences : ndarray, shape (n_species, n_sites)
        Encoded sequences (0=T, 1=C, 2=A, 3=G, -1=missing)
    n_species : int
        Number of sequences
    n_sites : int
        Number of sites (alignment length)
    """

    names: list[str]
    sequences: np.ndarray
    n_species: int
    n_sites: int

    def sequence(self, name: str) -> np.ndarray:
        """Encoded sequence of the named species."""
        try:
            return self.sequences[self.names.index(name)]
        except ValueError:
            raise KeyError(f"No sequence named {name!r}") from None

    @classmethod
    def from_file(cls, filepath: Path | str) -> "Alignment":
        """Parse an alignment, trying PHYLIP first and FASTA second."""
        filepath = Path(filepath)
        with open(filepath) as f:
            first = f.readline().strip()
        if first.startswith('>'):
            return cls.from_fasta(filepath)
        return cls.from_phylip(filepath)

    @classmethod
    def from_phylip(cls, filepath: Path | str) -> "Alignment":
        """
        Parse sequential PHYLIP format alignment file.

        The first line contains n_sequences and sequence_length. Each
        sequence starts with a name line (or a name followed by sequence
        data on the same line), followed by sequence data.

        Parameters
        ----------
        filepath : Path or str
            Path to PHYLIP format file

        Returns
        -------
        Alignment
            Parsed alignment
        """
        filepath = Path(filepath)

        with open(filepath, 'r') as f:
            lines = [line.rstrip() for line in f.readlines()]

        header = lines[0].strip().split()
        n_species = int(header[0])
        n_sites = int(header[1])

        names = []
        sequences_raw = []

        i = 1
        while i < len(lines) and len(names) < n_species:
            line = lines[i].strip()
            i += 1

            if not line:
                continue

            parts = line.split(None, 1)
            names.append(parts[0])
            seq_data = re.sub(r'\s', '', parts[1]).upper() if len(parts) > 1 else ""

            # Collect sequence data until we have enough characters
            while i < len(lines) and len(seq_data) < n_sites:
                line = lines[i].strip()
                i += 1
                if line:
                    seq_data += re.sub(r'\s', '', line).upper()

            sequences_raw.append(seq_data)

        if len(names) != n_species:
            raise ValueError(f"Expected {n_species} sequences, found {len(names)}")

        for name, seq in zip(names, sequences_raw):
            if len(seq) != n_sites:
                raise ValueError(
                    f"Sequence {name} has length {len(seq)}, expected {n_sites}"
                )

        return cls(
            names=names,
            sequences=cls._encode_nucleotides(sequences_raw),
            n_species=n_species,
            n_sites=n_sites,
        )

    @classmethod
    def from_fasta(cls, filepath: Path | str) -> "Alignment":
        """
        Parse FASTA format alignment file.

        Parameters
        ----------
        filepath : Path or str
            Path to FASTA format file

        Returns
        -------
        Alignment
            Parsed alignment
        """
        filepath = Path(filepath)

        names = []
        sequences_raw = []

        with open(filepath, 'r') as f:
            current_name = None
            current_seq = []

            for line in f:
                line = line.strip()

                if not line:
                    continue

                if line.startswith('>'):
                    if current_name is not None:
                        names.append(current_name)
                        sequences_raw.append(''.join(current_seq))

                    current_name = line[1:].strip()
                    current_seq = []
                else:
                    current_seq.append(line.upper())

            if current_name is not None:
                names.append(current_name)
                sequences_raw.append(''.join(current_seq))

        if not names:
            raise ValueError("No sequences found in FASTA file")

        sequences_clean = [re.sub(r'\s', '', seq) for seq in sequences_raw]

        seq_lengths = [len(seq) for seq in sequences_clean]
        if len(set(seq_lengths)) > 1:
            raise ValueError(
                f"Sequences have different lengths: {set(seq_lengths)}"
            )

        return cls(
            names=names,
            sequences=cls._encode_nucleotides(sequences_clean),
            n_species=len(names),
            n_sites=seq_lengths[0],
        )

    @staticmethod
    def _encode_nucleotides(sequences: list[str]) -> np.ndarray:
        """Encode DNA sequences as integer arrays (0=T, 1=C, 2=A, 3=G, -1=missing)."""
        n_sequences = len(sequences)
        n_sites = len(sequences[0]) if sequences else 0

        encoded = np.full((n_sequences, n_sites), MISSING_CODE, dtype=np.int8)

        for i, seq in enumerate(sequences):
            for j, nucleotide in enumerate(seq):
                if nucleotide in NUCLEOTIDE_TO_INDEX:
                    encoded[i, j] = NUCLEOTIDE_TO_INDEX[nucleotide]

        return encoded

    def to_fasta(self, filepath: Path | str) -> None:
        """
        Write alignment to FASTA format file (missing sites as ``N``).

        Parameters
        ----------
        filepath : Path or str
            Output file path
        """
        filepath = Path(filepath)

        with open(filepath, 'w') as f:
            for name, encoded_seq in zip(self.names, self.sequences):
                f.write(f">{name}\n")
                seq = ''.join(INDEX_TO_NUCLEOTIDE.get(int(idx), 'N') for idx in encoded_seq)
                for i in range(0, len(seq), 60):
                    f.write(seq[i:i+60] + '\n')

    def __repr__(self) -> str:
        return f"Alignment(n_species={self.n_species}, n_sites={self.n_sites})"
