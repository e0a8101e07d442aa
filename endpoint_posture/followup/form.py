"""
    Desktop follow-up form (tkinter).

    One modal window: review title, intro paragraph, a label and a text box
    per question, and a Submit button. Closing the window cancels.
"""
from __future__ import annotations
import logging

from endpoint_posture.core.errors import CatastrophicSetupError

logger = logging.getLogger(__name__)


class TkFormPresenter:
    def __init__(self, width: int = 720, wraplength: int = 660) -> None:
        self.width = width
        self.wraplength = wraplength

    def ask(self, title: str, intro: str, questions: list[str]) -> dict[str, str] | None:
        try:
            import tkinter as tk
            from tkinter import font, ttk

            root = tk.Tk()
        except Exception as e:
            raise CatastrophicSetupError(f"Could not open the follow-up form: {e}") from e

        logger.debug("Opening follow-up form with %d question(s)", len(questions))
        result: dict[str, dict[str, str] | None] = {"answers": None}
        boxes: dict[str, tk.Text] = {}

        root.title(title)
        root.minsize(self.width, 200)
        header = font.Font(root=root, size=14, weight="bold")

        frame = ttk.Frame(root, padding=16)
        frame.pack(fill="both", expand=True)
        ttk.Label(frame, text=title, font=header).pack(anchor="w", pady=(0, 8))
        ttk.Label(frame, text=intro, wraplength=self.wraplength, justify="left").pack(anchor="w", pady=(0, 12))

        for question in questions:
            ttk.Label(frame, text=question, wraplength=self.wraplength, justify="left").pack(anchor="w")
            box = tk.Text(frame, height=3, width=80, wrap="word")
            box.pack(fill="x", pady=(2, 10))
            boxes[question] = box

        def _submit() -> None:
            result["answers"] = {q: b.get("1.0", "end").strip() for q, b in boxes.items()}
            root.destroy()

        def _cancel() -> None:
            root.destroy()

        ttk.Button(frame, text="Submit", command=_submit).pack(anchor="e")
        root.protocol("WM_DELETE_WINDOW", _cancel)
        root.attributes("-topmost", True)
        if boxes:
            next(iter(boxes.values())).focus_set()

        # no timeout: waits for the user indefinitely
        root.mainloop()
        return result["answers"]
