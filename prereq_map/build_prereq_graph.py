#!/usr/bin/env python3

import argparse
import asyncio
import logging
import sys

from .catalog import SFUCatalogClient, load_catalog
from .config import Config
from .prereq_core import (
    apply_layout,
    build_graph,
    compute_layout,
    graph_to_frames,
    print_graph_analysis,
    visualize_graph,
)


def main(argv=None):
    ap = argparse.ArgumentParser(description="Build the prerequisite graph for a course")
    ap.add_argument("course", help='Start course, e.g. "CMPT 307"')
    ap.add_argument("--catalog", default=Config.CATALOG_PATH,
                    help="Local catalog CSV/XLSX (SFU API if omitted)")
    ap.add_argument("--max-depth", type=int, default=Config.MAX_DEPTH, help="Deepest level to expand")
    ap.add_argument("--timeout", type=float, default=Config.BUILD_TIMEOUT, help="Build time limit in seconds")
    ap.add_argument("--nodes-out", help="Output path for nodes CSV")
    ap.add_argument("--edges-out", help="Output path for edges CSV")
    ap.add_argument("--plot", help="Output path for a PNG drawing of the graph")
    ap.add_argument("--relax", action="store_true", help="Nudge positions with a spring layout")
    ap.add_argument("--width", type=float, default=1200, help="Canvas width")
    ap.add_argument("--height", type=float, default=800, help="Canvas height")

    args = ap.parse_args(argv)
    logging.basicConfig(level=Config.LOG_LEVEL)

    if not args.course.strip():
        print("Error: course must not be empty")
        return 1

    catalog = load_catalog(args.catalog) if args.catalog else SFUCatalogClient()

    graph = asyncio.run(build_graph(
        args.course, catalog, max_depth=args.max_depth, timeout=args.timeout))

    if not graph.nodes:
        print(f"No data found for {args.course.strip()}")
        return 0

    positions = compute_layout(graph, args.width, args.height, relax=args.relax)
    apply_layout(graph, positions)
    print_graph_analysis(graph, top_n=5)

    nodes_df, edges_df = graph_to_frames(graph, positions)
    if args.nodes_out:
        nodes_df.to_csv(args.nodes_out, index=False)
        print(f"Nodes written: {args.nodes_out} ({len(nodes_df)} rows)")
    if args.edges_out:
        edges_df.to_csv(args.edges_out, index=False)
        print(f"Edges written: {args.edges_out} ({len(edges_df)} rows)")

    if args.plot:
        import matplotlib.pyplot as plt

        fig, _ = visualize_graph(graph, positions, save_path=args.plot)
        plt.close(fig)

    print("\nSample of prerequisite graph:")
    print(nodes_df[["id", "title", "depth"]].head(20).to_string(index=False))
    return 0


if __name__ == "__main__":
    sys.exit(main())
