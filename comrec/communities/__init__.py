"""Community detection on user/item similarity graphs.

Three backends share one interface (`backends.CommunityBackend`):
- Walktrap: hard partition from python-igraph's random-walk clustering
- DMID: overlapping cover from leadership random walks and cascades
- SLPA: overlapping cover from speaker-listener label propagation

`detector.CommunityDetector` selects the backend, normalizes its output into a
membership matrix and optionally collapses overlapping covers.
"""
