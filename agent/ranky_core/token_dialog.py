"""
Token entry dialog (Tkinter) — the default interactive token collector.

Runs its own short-lived Tk root on whatever thread calls it (the loop's
executor), so the event loop keeps running while the user types.
"""

import tkinter as tk

from .constants import THEME
from .config import log


def gui_token_prompt():
    """Show a dialog asking for the access token. Returns str or None."""
    result = {"token": None}

    try:
        root = tk.Tk()
    except tk.TclError as e:
        log.warning("Cannot open token dialog (no display?): %s", e)
        return None

    root.title("Ranky — Sign in")
    root.geometry("460x300")
    root.resizable(False, False)
    root.configure(bg=THEME["bg_darkest"])
    root.attributes("-topmost", True)

    # Center on screen
    root.update_idletasks()
    x = (root.winfo_screenwidth() // 2) - 230
    y = (root.winfo_screenheight() // 2) - 150
    root.geometry(f"460x300+{x}+{y}")

    # ─── Header ───────────────────────────────
    header = tk.Frame(root, bg=THEME["header_bg"], height=70)
    header.pack(fill="x")
    header.pack_propagate(False)
    tk.Label(header, text="Ranky Coding Stats",
             font=("Segoe UI", 14, "bold"), fg="white",
             bg=THEME["header_bg"]).pack(expand=True)

    # ─── Body ─────────────────────────────────
    body = tk.Frame(root, bg=THEME["bg_darkest"], padx=35, pady=20)
    body.pack(fill="both", expand=True)

    tk.Label(body, text="Access Token", font=("Segoe UI", 11, "bold"),
             bg=THEME["bg_darkest"], fg=THEME["text_primary"]).pack(anchor="w")
    token_var = tk.StringVar()
    token_entry = tk.Entry(body, textvariable=token_var, font=("Segoe UI", 11),
                           show="•",
                           bg=THEME["bg_input"], fg=THEME["text_primary"],
                           insertbackground=THEME["text_primary"],
                           relief="solid", borderwidth=1,
                           highlightbackground=THEME["border"],
                           highlightcolor=THEME["primary"])
    token_entry.pack(fill="x", pady=(4, 10))
    token_entry.focus_set()

    status = tk.Label(body, text="Paste the token from your Ranky dashboard.",
                      font=("Segoe UI", 10), bg=THEME["bg_darkest"],
                      fg=THEME["text_secondary"])
    status.pack(pady=(0, 10))

    def on_submit(_event=None):
        value = token_var.get().strip()
        if not value:
            status.config(text="Token is required.", fg=THEME["error"])
            return
        result["token"] = value
        root.quit()

    btn = tk.Button(body, text="Sign in", font=("Segoe UI", 12, "bold"),
                    bg=THEME["primary"], fg="white",
                    activebackground=THEME["primary_hover"],
                    activeforeground="white",
                    relief="flat", padx=20, pady=8, cursor="hand2",
                    command=on_submit)
    btn.pack(fill="x")

    root.bind("<Return>", on_submit)
    root.protocol("WM_DELETE_WINDOW", root.quit)
    root.mainloop()

    try:
        root.destroy()
    except tk.TclError:
        pass

    return result["token"]
