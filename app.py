"""Streamlit application walking through a bulk RNA-seq differential-expression analysis."""
from __future__ import annotations

from typing import Optional

import pandas as pd
import streamlit as st

from rnaseq_de import config
from rnaseq_de.annotation import AnnotationError
from rnaseq_de.differential import (
    DesignSpec,
    DifferentialExpressionError,
    significant_genes,
)
from rnaseq_de.loading import LoadingError
from rnaseq_de.plots import (
    PlottingError,
    generate_heatmap,
    generate_ma_plot,
    generate_volcano_plot,
    perform_pca,
    sample_distance_heatmap,
    tpm_scatterplot,
    venn_diagram,
)
from rnaseq_de.tpm import NormalizationError, filter_expressed
from rnaseq_de.workflow import (
    RNASeqWorkflow,
    WorkflowConfig,
    WorkflowError,
    WorkflowResult,
    list_available_datasets,
)

st.set_page_config(page_title="RNA-seq Differential Expression Walkthrough", layout="wide")

WORKFLOW_ERRORS = (
    WorkflowError,
    LoadingError,
    AnnotationError,
    NormalizationError,
    DifferentialExpressionError,
)


def _current_result() -> Optional[WorkflowResult]:
    return st.session_state.get("workflow_result")


def _transformed(result: WorkflowResult, design: str) -> pd.DataFrame:
    deseq_result = result.deseq_results[design]
    if deseq_result.vst_counts is not None:
        return deseq_result.vst_counts
    return deseq_result.normalized_counts


st.title("RNA-seq 差异表达分析教程")
st.caption("从count矩阵到TPM、DESeq2结果与探索性可视化。")

datasets = list_available_datasets()
if not datasets:
    st.info(f"请先将 {config.METADATA_FILE} 与 count 矩阵放入 data/<dataset> 目录。")
    st.stop()

with st.sidebar:
    st.header("分析参数")
    dataset = st.selectbox("选择数据集", datasets)
    condition_column = st.text_input("条件列", value=config.DEFAULT_CONDITION_COLUMN)
    reference_level = st.text_input("参考水平", value=config.DEFAULT_REFERENCE_LEVEL)
    tested_level = st.text_input("比较水平", value="treated")
    first_formula = st.text_input("设计公式 1", value=config.DEFAULT_DESIGN_FORMULA)
    second_formula = st.text_input("设计公式 2 (可选)", value="~ type + condition")
    min_total_count = st.number_input(
        "最少总reads数", min_value=0, value=config.DEFAULT_MIN_TOTAL_COUNT, step=1
    )
    padj_threshold = st.slider("padj 阈值", 0.0, 0.5, config.DEFAULT_PADJ_THRESHOLD, 0.01)
    log2fc_threshold = st.slider("log2FC 阈值", 0.0, 5.0, config.DEFAULT_LOG2FC_THRESHOLD, 0.1)
    drop_invalid_lengths = st.checkbox("排除长度无效的基因", value=False)

    if st.button("运行分析", type="primary"):
        contrast = (condition_column, tested_level, reference_level)
        designs = [DesignSpec(name="design_1", formula=first_formula, contrast=contrast)]
        if second_formula.strip():
            designs.append(DesignSpec(name="design_2", formula=second_formula, contrast=contrast))
        params = WorkflowConfig(
            dataset=dataset,
            designs=designs,
            condition_column=condition_column,
            reference_level=reference_level,
            min_total_count=int(min_total_count),
            padj_threshold=padj_threshold,
            log2fc_threshold=log2fc_threshold,
            drop_invalid_lengths=drop_invalid_lengths,
        )
        try:
            with st.spinner("正在运行 DESeq2 ..."):
                st.session_state["workflow_result"] = RNASeqWorkflow(params).run()
        except WORKFLOW_ERRORS as exc:
            st.error(str(exc))
        else:
            st.success("分析完成！")

result = _current_result()
if result is None:
    st.info("在左侧设置参数后点击“运行分析”。")
    st.stop()

st.subheader("样本信息预览")
st.dataframe(result.metadata)

tpm_tab, de_tab, pca_tab, distance_tab, scatter_tab, heatmap_tab, venn_tab = st.tabs(
    ["TPM 标准化", "差异分析 (DESeq2)", "PCA", "样本距离", "TPM 散点图", "表达热图", "设计比较 (Venn)"]
)

design_names = list(result.deseq_results)

with tpm_tab:
    st.markdown("### TPM 矩阵")
    min_tpm = st.slider("最低 TPM", 0.0, 10.0, config.DEFAULT_MIN_TPM, 0.5)
    min_samples = st.slider("至少满足的样本数", 1, result.tpm.shape[1], min(2, result.tpm.shape[1]))
    expressed = filter_expressed(result.tpm, min_tpm=min_tpm, min_samples=min_samples)
    st.write(f"{int(expressed.sum())} / {len(expressed)} 个基因满足条件")
    st.dataframe(result.tpm.loc[expressed].head(50))
    st.markdown("#### 各条件平均 TPM")
    st.dataframe(result.averages.head(50))
    st.download_button(
        "下载 TPM 矩阵",
        data=result.tpm.to_csv().encode("utf-8"),
        file_name=f"{dataset}_tpm.csv",
        mime="text/csv",
    )

with de_tab:
    st.markdown("### DESeq2 差异分析")
    design_name = st.selectbox("选择设计", design_names, key="de_design")
    deseq_results = result.deseq_results[design_name].results
    st.caption(f"公式：{result.deseq_results[design_name].design.formula}")
    st.dataframe(deseq_results.sort_values("padj").head(20))

    col1, col2 = st.columns(2)
    with col1:
        max_log2fc = st.slider("log2FC 范围", 0.5, 10.0, 5.0, 0.5)
        st.plotly_chart(
            generate_volcano_plot(
                deseq_results,
                log2fc_threshold=log2fc_threshold,
                padj_threshold=padj_threshold,
                max_log2fc=max_log2fc,
            ),
            use_container_width=True,
        )
    with col2:
        st.plotly_chart(generate_ma_plot(deseq_results, padj_threshold=padj_threshold), use_container_width=True)

    top_n = st.slider("导出Top基因数量", min_value=10, max_value=500, value=100, step=10)
    st.download_button(
        "下载差异基因列表",
        data=deseq_results.sort_values("padj").head(top_n).to_csv().encode("utf-8"),
        file_name=f"{dataset}_{design_name}_top{top_n}.csv",
        mime="text/csv",
    )

with pca_tab:
    st.markdown("### PCA (VST)")
    design_name = st.selectbox("选择设计", design_names, key="pca_design")
    top_n = st.slider("按方差选择前N个基因", min_value=50, max_value=2000, value=500, step=50)
    color_by = st.selectbox("颜色映射列", ["无"] + result.metadata.columns.tolist())
    symbol_by = st.selectbox("形状映射列", ["无"] + result.metadata.columns.tolist())
    try:
        fig = perform_pca(
            _transformed(result, design_name),
            result.metadata,
            top_n=top_n,
            color_by=None if color_by == "无" else color_by,
            symbol_by=None if symbol_by == "无" else symbol_by,
        )
    except PlottingError as exc:
        st.error(str(exc))
    else:
        st.plotly_chart(fig, use_container_width=True)

with distance_tab:
    st.markdown("### 样本距离热图")
    design_name = st.selectbox("选择设计", design_names, key="distance_design")
    label_by = st.selectbox("标签列", ["无"] + result.metadata.columns.tolist())
    fig = sample_distance_heatmap(
        _transformed(result, design_name),
        result.metadata,
        label_by=None if label_by == "无" else label_by,
    )
    st.plotly_chart(fig, use_container_width=True)

with scatter_tab:
    st.markdown("### 条件平均 TPM 散点图")
    conditions = result.averages.columns.tolist()
    if len(conditions) < 2:
        st.info("至少需要两个条件。")
    else:
        x_condition = st.selectbox("X 轴条件", conditions, index=0)
        y_condition = st.selectbox("Y 轴条件", conditions, index=1)
        design_name = st.selectbox("高亮的差异基因来自", design_names, key="scatter_design")
        highlight = significant_genes(
            result.deseq_results[design_name].results,
            padj_threshold=padj_threshold,
            log2fc_threshold=log2fc_threshold,
        )
        fig = tpm_scatterplot(result.averages, x_condition, y_condition, highlight=highlight)
        st.plotly_chart(fig, use_container_width=True)

with heatmap_tab:
    st.markdown("### 差异基因表达热图")
    design_name = st.selectbox("选择设计", design_names, key="heatmap_design")
    top_n = st.slider("热图包含的基因数量", min_value=10, max_value=200, value=50, step=10)
    color_scale = st.selectbox("颜色方案", ["RdBu_r", "Viridis", "Plasma", "Inferno", "Magma"], index=0)
    ranked = result.deseq_results[design_name].results.dropna(subset=["padj"]).sort_values("padj")
    try:
        fig = generate_heatmap(
            _transformed(result, design_name),
            result.metadata,
            genes=ranked.index.tolist(),
            top_n=top_n,
            color_scale=color_scale,
        )
    except PlottingError as exc:
        st.error(str(exc))
    else:
        st.plotly_chart(fig, use_container_width=True)

with venn_tab:
    st.markdown("### 两个设计的差异基因比较")
    if result.comparison is None:
        st.info("需要两个设计公式才能比较。")
    else:
        st.plotly_chart(venn_diagram(result.comparison), use_container_width=True)
        st.download_button(
            "下载比较结果",
            data=result.comparison.as_frame().to_csv(index=False).encode("utf-8"),
            file_name=f"{dataset}_design_comparison.csv",
            mime="text/csv",
        )
