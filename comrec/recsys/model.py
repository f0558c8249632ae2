from __future__ import annotations

import torch
import torch.nn as nn


class CommunityNeighborhoodModel(nn.Module):
    """Parameter tables of the community-aware neighborhood SVD++ model.

    Koren, "Factorization Meets the Neighborhood: a Multifaceted Collaborative
    Filtering Model", KDD 2008, extended with community biases and community
    factor offsets. Tables are plain embeddings updated in place by the SGD loop
    in `train.py`; autograd is not used.
    """

    def __init__(
        self,
        n_users: int,
        n_items: int,
        n_user_communities: int,
        n_item_communities: int,
        *,
        factors: int = 10,
        init_mean: float = 0.0,
        init_std: float = 0.1,
        generator: torch.Generator | None = None,
    ) -> None:
        super().__init__()
        kw = {"dtype": torch.float64}

        self.user_bias = nn.Embedding(int(n_users), 1, **kw)
        self.item_bias = nn.Embedding(int(n_items), 1, **kw)
        self.user_com_bias = nn.Embedding(int(n_user_communities), 1, **kw)
        self.item_com_bias = nn.Embedding(int(n_item_communities), 1, **kw)

        # Latent factors: P (users), Q (items), Y (implicit rated-item offsets),
        # Z (community co-rated item offsets), Ocu / Oci (community offsets).
        self.P = nn.Embedding(int(n_users), int(factors), **kw)
        self.Q = nn.Embedding(int(n_items), int(factors), **kw)
        self.Y = nn.Embedding(int(n_items), int(factors), **kw)
        self.Z = nn.Embedding(int(n_items), int(factors), **kw)
        self.Ocu = nn.Embedding(int(n_user_communities), int(factors), **kw)
        self.Oci = nn.Embedding(int(n_item_communities), int(factors), **kw)

        # Item-item neighborhood weights (rows: target item j, columns: neighbor k).
        self.W = nn.Embedding(int(n_items), int(n_items), **kw)
        self.C = nn.Embedding(int(n_items), int(n_items), **kw)
        self.D = nn.Embedding(int(n_items), int(n_items), **kw)

        for p in self.parameters():
            p.requires_grad_(False)
            with torch.no_grad():
                p.normal_(mean=float(init_mean), std=float(init_std), generator=generator)

    @property
    def factors(self) -> int:
        return int(self.P.weight.shape[1])

    def tables(self) -> dict[str, torch.Tensor]:
        """Raw weight tensors by name; biases are flattened to vectors."""
        out: dict[str, torch.Tensor] = {}
        for name, module in self.named_children():
            w = module.weight
            out[name] = w.view(-1) if w.shape[1] == 1 and name.endswith("bias") else w
        return out
