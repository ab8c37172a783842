from typing import Any, Dict, Optional

THEMES = {
    "Warm Clay": {
        "bg": "#f7f5f2",
        "surface": "#ffffff",
        "surface2": "#fbfaf7",
        "ink": "#1f2328",
        "muted": "#5f6c7b",
        "accent": "#ff6b4a",
        "accent2": "#2c7a7b",
        "border": "#e2ded7",
        "critical": "#e74c3c",
        "critical_soft": "#ffd2c5",
        "noncritical": "#3498db",
        "node_crit": "#ffc2b3",
        "node_noncrit": "#d7eef0",
        "edge_fs": "#2563eb",
        "edge_ss": "#2c7a7b",
        "edge_ff": "#f59e0b",
        "edge_sf": "#7c3aed",
        "graph_edge": "#c7bfb4",
        "path_palette": [
            "#e74c3c", "#f39c12", "#8e44ad", "#16a085",
            "#2c7a7b", "#d35400", "#7f8c8d", "#2980b9",
        ],
    },
    "Nordic Blue": {
        "bg": "#f3f6fb",
        "surface": "#ffffff",
        "surface2": "#f2f7ff",
        "ink": "#1c2433",
        "muted": "#5b6b7f",
        "accent": "#3b82f6",
        "accent2": "#0f766e",
        "border": "#dbe3f2",
        "critical": "#f97316",
        "critical_soft": "#ffe2d1",
        "noncritical": "#0f766e",
        "node_crit": "#ffd6c7",
        "node_noncrit": "#d9f0ff",
        "edge_fs": "#3b82f6",
        "edge_ss": "#0f766e",
        "edge_ff": "#f59e0b",
        "edge_sf": "#8b5cf6",
        "graph_edge": "#c7d3e6",
        "path_palette": [
            "#f97316", "#eab308", "#8b5cf6", "#14b8a6",
            "#0f766e", "#ec4899", "#64748b", "#3b82f6",
        ],
    },
}


def get_active_theme(theme_name: str) -> Dict[str, Any]:
    return THEMES.get(theme_name, THEMES["Warm Clay"])


def path_color(theme: Dict[str, Any], path_number: Optional[int]) -> str:
    """Path 1 always uses the critical color; later paths cycle through the palette."""
    if path_number is None or path_number < 1:
        return theme["noncritical"]
    if path_number == 1:
        return theme["critical"]
    palette = theme["path_palette"]
    return palette[(path_number - 1) % len(palette)]


APP_CSS = """
<style>
:root {
    --fp-bg: __FP_BG__;
    --fp-surface: __FP_SURFACE__;
    --fp-ink: __FP_INK__;
    --fp-muted: __FP_MUTED__;
    --fp-accent: __FP_ACCENT__;
    --fp-border: __FP_BORDER__;
}
.stApp {
    background: var(--fp-bg);
}
[data-testid="stAppViewContainer"] h1,
[data-testid="stAppViewContainer"] h2,
[data-testid="stAppViewContainer"] h3,
[data-testid="stAppViewContainer"] p,
[data-testid="stAppViewContainer"] label {
    color: var(--fp-ink);
}
[data-testid="stMetricLabel"] {
    color: var(--fp-muted);
}
[data-testid="stSidebar"] {
    background: var(--fp-surface);
    border-right: 1px solid var(--fp-border);
}
.fp-path-chip {
    display: inline-block;
    padding: 2px 10px;
    margin: 2px 4px 2px 0;
    border-radius: 999px;
    color: #ffffff;
    font-size: 0.85rem;
}
</style>
"""


def get_theme_css(theme: Dict[str, Any]) -> str:
    """
    Returns the CSS for the application with tokens replaced by theme values.
    """
    css = APP_CSS
    replacements = {
        "__FP_BG__": theme["bg"],
        "__FP_SURFACE__": theme["surface"],
        "__FP_INK__": theme["ink"],
        "__FP_MUTED__": theme["muted"],
        "__FP_ACCENT__": theme["accent"],
        "__FP_BORDER__": theme["border"],
    }
    for token, value in replacements.items():
        css = css.replace(token, value)
    return css
