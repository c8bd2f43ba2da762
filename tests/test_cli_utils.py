import numpy as np
import pandas as pd
import pytest

from dcvar.cli import utils
from dcvar.cli.run import main


def test_parse_args_defaults(tmp_path) -> None:
    args = utils.parse_args(
        [
            "--genotype",
            str(tmp_path / "snps.tab"),
            "--expression",
            str(tmp_path / "expr.tab"),
        ]
    )
    assert args.genotype.endswith("snps.tab")
    assert args.expression.endswith("expr.tab")
    assert args.model == "dom"
    assert args.correction == "fdr"
    assert args.correction_value == pytest.approx(0.05)
    assert args.checkpoint is True
    assert args.resume is False
    assert args.cpu == 1

    config = utils.build_config(args)
    assert config.correction == "fdr"
    assert config.resume_reprocess_last is True


def test_parse_args_respects_overrides(tmp_path) -> None:
    args = utils.parse_args(
        [
            "-g", str(tmp_path / "g.tab"),
            "-e", str(tmp_path / "e.h5"),
            "--model", "hom",
            "--correction", "none",
            "--no-checkpoint",
            "--resume",
            "--resume-skip-completed",
            "--cpu", "0",
            "--output-prefix", "batch7",
        ]
    )
    config = utils.build_config(args)

    assert config.genetic_model == "hom"
    assert config.correction is None
    assert config.correction_label == "none"
    assert config.checkpoint is False
    assert config.resume is True
    assert config.resume_reprocess_last is False
    assert config.cpu == 0
    assert config.output_prefix == "batch7"


def test_parse_args_rejects_unknown_model(tmp_path) -> None:
    with pytest.raises(SystemExit):
        utils.parse_args(["-g", "g.tab", "-e", "e.tab", "--model", "additive"])


def test_main_exits_with_message_on_missing_input(tmp_path) -> None:
    with pytest.raises(SystemExit) as excinfo:
        main(["-g", str(tmp_path / "none.tab"), "-e", str(tmp_path / "none2.tab"),
              "-o", str(tmp_path / "out")])

    assert "not found" in str(excinfo.value.code)


def test_main_runs_batch(tmp_path) -> None:
    rng = np.random.default_rng(13)
    subjects = [f"s{i}" for i in range(16)]
    pd.DataFrame(rng.standard_normal((5, 16)), index=[f"g{i}" for i in range(5)],
                 columns=subjects).to_csv(tmp_path / "expr.tab", sep='\t')
    pd.DataFrame([[2] * 8 + [0] * 8], index=["rs1"], columns=subjects).to_csv(
        tmp_path / "snps.tab", sep='\t')

    code = main(["-g", str(tmp_path / "snps.tab"), "-e", str(tmp_path / "expr.tab"),
                 "-o", str(tmp_path / "out"), "--correction", "custom", "--correction-value", "1.0"])

    assert code == 0
    out = pd.read_csv(tmp_path / "out" / "dcvar.custom.rs1.pass.tab", sep='\t')
    assert len(out) == 10
    assert (tmp_path / "out" / "dcvar.dcvar_summary.csv").exists()
