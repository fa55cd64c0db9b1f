"""keycompose: three-layer real-time compositor with chroma keying.

Composite a background, a primary subject and an overlay onto one output
surface every display refresh, key out a color per layer, and record the
result plus the mixed audio of every video layer to mp4 (or webm).
"""
