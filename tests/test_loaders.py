import gzip
import sys
import types

import numpy as np
import pytest

from dcvar.data import loaders
from dcvar.data import load_genotype_plink
from dcvar.utils.data_types import GenotypeMatrix, MISSING


def _write_genotypes(path) -> None:
    path.write_text(
        "ID\ts1\ts2\ts3\ts4\n"
        "rs1\t0\t1\t2\t2\n"
        "rs2\t2\t\t0\t1\n",
        encoding="utf-8",
    )


def test_load_genotype_tab_file(tmp_path) -> None:
    geno_path = tmp_path / "snps.tab"
    _write_genotypes(geno_path)

    genotypes, subjects, variant_map = loaders.load_genotype_file(geno_path)

    assert isinstance(genotypes, GenotypeMatrix)
    assert genotypes.shape == (2, 4)
    assert subjects == ["s1", "s2", "s3", "s4"]
    assert variant_map.snp_ids == ["rs1", "rs2"]
    np.testing.assert_array_equal(genotypes.get_variant(1), np.array([2, MISSING, 0, 1], dtype=np.int8))
    assert genotypes.to_numpy().dtype == np.int8


def test_load_genotype_blank_cells_become_missing_in_writable_array(tmp_path) -> None:
    geno_path = tmp_path / "blank.tab"
    geno_path.write_text("ID\ts1\ts2\ts3\nrs1\t\t2\t0\nrs2\t1\tNA\t2\n", encoding="utf-8")

    genotypes, _, _ = loaders.load_genotype_file(geno_path)

    codes = genotypes.to_numpy()
    np.testing.assert_array_equal(codes, np.array([[MISSING, 2, 0], [1, MISSING, 2]], dtype=np.int8))
    assert codes.flags.writeable


def test_load_genotype_warns_on_duplicated_subject_ids(tmp_path) -> None:
    geno_path = tmp_path / "dup.tab"
    geno_path.write_text("ID\ts1\ts2\ts1\nrs1\t0\t1\t2\n", encoding="utf-8")

    with pytest.warns(UserWarning, match="Duplicated subject IDs"):
        genotypes, subjects, _ = loaders.load_genotype_file(geno_path)

    assert genotypes.shape == (1, 3)
    assert len(subjects) == 3


def test_load_genotype_gzipped_file(tmp_path) -> None:
    geno_path = tmp_path / "snps.tab.gz"
    with gzip.open(geno_path, "wt") as fh:
        fh.write("ID\ta\tb\nrsA\t0\t2\nrsB\t1\t1\n")

    genotypes, subjects, variant_map = loaders.load_genotype_file(geno_path)

    assert subjects == ["a", "b"]
    np.testing.assert_array_equal(genotypes.to_numpy(), np.array([[0, 2], [1, 1]], dtype=np.int8))


def test_load_genotype_rejects_non_numeric_and_fractional_codes(tmp_path) -> None:
    bad_text = tmp_path / "bad.tab"
    bad_text.write_text("ID\ts1\ts2\nrs1\t0\tAA\n", encoding="utf-8")
    with pytest.raises(ValueError, match="Non-numeric"):
        loaders.load_genotype_file(bad_text)

    bad_code = tmp_path / "frac.tab"
    bad_code.write_text("ID\ts1\ts2\nrs1\t0\t1.5\n", encoding="utf-8")
    with pytest.raises(ValueError, match="small integers"):
        loaders.load_genotype_file(bad_code)


def test_load_genotype_missing_file(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        loaders.load_genotype_file(tmp_path / "absent.tab", file_format="tsv")


def test_load_expression_tab_file(tmp_path) -> None:
    expr_path = tmp_path / "expr.tab"
    expr_path.write_text(
        "gene\ts1\ts2\ts3\n"
        "GeneA\t1.0\t2.5\t3.0\n"
        "GeneB\t0.1\t0.2\t0.3\n",
        encoding="utf-8",
    )

    expr = loaders.load_expression_file(expr_path)

    assert expr.shape == (2, 3)
    assert expr.gene_names == ["GeneA", "GeneB"]
    assert expr.subject_ids == ["s1", "s2", "s3"]
    np.testing.assert_allclose(expr.to_numpy()[0], [1.0, 2.5, 3.0])


def test_load_expression_warns_on_missing_values(tmp_path) -> None:
    expr_path = tmp_path / "expr.tab"
    expr_path.write_text("gene\ts1\ts2\nGeneA\t1.0\t\nGeneB\t0.1\t0.2\n", encoding="utf-8")

    with pytest.warns(UserWarning, match="missing values"):
        loaders.load_expression_file(expr_path)


def test_load_snp_locations_skips_malformed_lines(tmp_path) -> None:
    loc_path = tmp_path / "locs.txt"
    loc_path.write_text(
        "SNP\tCHROM\tPOS\tX\tREF\n"
        "rs1\t1\t1000\t.\tACG\n"
        "rs2\t2\t2000\t.\n"
        "rs3\tX\t3000\t.\tT\n",
        encoding="utf-8",
    )

    with pytest.warns(UserWarning, match="do not have 5 columns"):
        df = loaders.load_snp_locations_file(loc_path)

    assert list(df["SNP"]) == ["rs1", "rs3"]
    assert list(df["POS"]) == [1000, 3000]
    assert list(df["REF"]) == ["A", "T"]


def test_load_chipseq_keys_by_rs_id(tmp_path) -> None:
    fields = ["x"] * 16
    fields[0] = "chr1"
    fields[1] = "38367404"
    fields[11] = "42.5"
    fields[15] = "rs28469609:38367404:C:T"
    chip_path = tmp_path / "chip.txt"
    chip_path.write_text("\t".join(f"h{k}" for k in range(16)) + "\n" + "\t".join(fields) + "\n",
                         encoding="utf-8")

    df = loaders.load_chipseq_file(chip_path)

    assert list(df["SNP"]) == ["rs28469609"]
    assert df.loc[0, "CHROM"] == "chr1"
    assert df.loc[0, "POS"] == 38367404
    assert df.loc[0, "ChIPSeqReads"] == pytest.approx(42.5)


def test_check_subject_alignment() -> None:
    loaders.check_subject_alignment(["a", "b"], ["a", "b"])

    with pytest.warns(UserWarning, match="matched by column position"):
        loaders.check_subject_alignment(["a", "b"], ["a", "c"])

    with pytest.raises(ValueError):
        loaders.check_subject_alignment(["a", "b"], ["a"])


def test_detect_file_format() -> None:
    assert loaders.detect_file_format("geno.bed") == "plink"
    assert loaders.detect_file_format("expr.h5") == "hdf5"
    assert loaders.detect_file_format("snps.tab.gz") == "tsv"
    assert loaders.detect_file_format("snps.csv") == "csv"


def test_recode_plink_dosages_marks_missing_and_transposes() -> None:
    X = np.array([[0.0, 2.0], [np.nan, 1.0], [2.0, 5.0]])

    codes = load_genotype_plink.recode_plink_dosages(X)

    np.testing.assert_array_equal(codes, np.array([[0, MISSING, 2], [2, 1, MISSING]], dtype=np.int8))


def test_load_genotype_plink_through_loader(monkeypatch, tmp_path) -> None:
    prefix = tmp_path / "study"
    prefix.with_suffix(".bed").write_bytes(b"bed")
    prefix.with_suffix(".bim").write_text("1 rs1 0 100 A G\n2 rs2 0 200 T C\n", encoding="utf-8")
    prefix.with_suffix(".fam").write_text("f1 i1\nf2 i2\nf3 i3\n", encoding="utf-8")

    class FakeBed:
        def read(self):
            return np.array([[0.0, 2.0], [1.0, np.nan], [2.0, 0.0]])

    fake_mod = types.ModuleType("bed_reader")
    fake_mod.open_bed = lambda path: FakeBed()
    monkeypatch.setitem(sys.modules, "bed_reader", fake_mod)

    genotypes, subjects, variant_map = loaders.load_genotype_file(prefix.with_suffix(".bed"))

    assert subjects == ["i1", "i2", "i3"]
    np.testing.assert_array_equal(genotypes.to_numpy(), np.array([[0, 1, 2], [2, MISSING, 0]], dtype=np.int8))
    assert variant_map.snp_ids == ["rs1", "rs2"]
    assert variant_map.data.loc[1, "POS"] == 200


def test_plink_count_mismatch_raises(monkeypatch, tmp_path) -> None:
    prefix = tmp_path / "bad"
    prefix.with_suffix(".bed").write_bytes(b"bed")
    prefix.with_suffix(".bim").write_text("1 rs1 0 100 A G\n", encoding="utf-8")
    prefix.with_suffix(".fam").write_text("f1 i1\n", encoding="utf-8")

    class FakeBed:
        def read(self):
            return np.zeros((2, 1))

    fake_mod = types.ModuleType("bed_reader")
    fake_mod.open_bed = lambda path: FakeBed()
    monkeypatch.setitem(sys.modules, "bed_reader", fake_mod)

    with pytest.raises(ValueError, match="Sample count mismatch"):
        load_genotype_plink.load_genotype_plink(prefix)


def test_genotype_matrix_requires_2d_array(tmp_path) -> None:
    with pytest.raises(ValueError, match="numpy array"):
        GenotypeMatrix(str(tmp_path / "codes.bin"))
    with pytest.raises(ValueError, match="2D"):
        GenotypeMatrix(np.zeros(4, dtype=np.int8))

    genotypes = GenotypeMatrix(np.array([[0, 2, MISSING]], dtype=np.int8))
    assert (genotypes.n_variants, genotypes.n_subjects) == (1, 3)
