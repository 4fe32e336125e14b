"""Built-in templates for the degraded stages of a compile request."""

from __future__ import annotations

# Placeholders used by FALLBACK_TEMPLATE; leftovers are stripped before compiling.
FALLBACK_PLACEHOLDERS = ("companyName", "position", "location")

# Only geometry and xcolor: both ship with every TinyTeX / TeX Live scheme.
FALLBACK_TEMPLATE = r"""\documentclass[11pt,a4paper]{article}
\usepackage[margin=1in]{geometry}
\usepackage{xcolor}

\definecolor{cvaccent}{RGB}{0, 90, 160}
\definecolor{cvmuted}{RGB}{100, 100, 100}

\pagenumbering{gobble}

\begin{document}

\begin{center}
{\Huge\bfseries\color{cvaccent} CV for {{companyName}}}
\\[0.5em]
{\Large\color{cvmuted} {{position}}}
\\[0.3em]
{\normalsize\color{cvmuted} {{location}}}
\end{center}

\vspace{1em}

\section*{Experience}
\begin{itemize}
\item \textbf{{{companyName}}} -- {{position}}
\end{itemize}

\vfill
\begin{center}
\textit{Generated: \today}
\end{center}

\end{document}
"""

# No packages and no data: the last stage must compile on any toolchain.
ERROR_TEMPLATE = r"""\documentclass[11pt,a4paper]{article}

\pagenumbering{gobble}

\begin{document}

\begin{center}
{\Huge\bfseries Template Error}
\\[1cm]
{\large There was an error processing your document template.}
\\[0.5cm]
{\normalsize Please check your template for LaTeX syntax errors or try a different template.}
\end{center}

\vfill
\begin{center}
\textit{Generated: \today}
\end{center}

\end{document}
"""


def wrap_snippet(content: str) -> str:
    """Wrap a body fragment in a minimal document unless it is already complete."""
    if "\\begin{document}" in content:
        return content
    return f"\\documentclass{{article}}\n\\begin{{document}}\n{content}\n\\end{{document}}\n"
