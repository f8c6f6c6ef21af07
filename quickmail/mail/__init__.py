"""
Message rendering: pick the displayable part of a mail, make it safe to show, and
hand it to the page as a one-time fragment.
"""
