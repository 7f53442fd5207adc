def copy_text(text: str) -> bool:
    """Puts ``text`` on the system clipboard. Returns False when no display is available."""
    import tkinter as tk

    try:
        root = tk.Tk()
    except tk.TclError:
        return False
    try:
        root.withdraw()
        root.clipboard_clear()
        root.clipboard_append(text)
        # Hand the selection over to the clipboard manager before the window goes away.
        root.update()
    finally:
        root.destroy()
    return True
