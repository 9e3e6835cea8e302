"""Problem bank for daily challenges, grouped by topic."""

from __future__ import annotations

import string
from dataclasses import dataclass

from codefolio.platforms import Platform

DIFFICULTIES: tuple[str, ...] = ("Easy", "Medium", "Hard")


@dataclass(frozen=True)
class Problem:
    problem_id: str  # LeetCode slug, Codeforces "<contest><index>", CodeChef code
    title: str
    platform: Platform
    difficulty: str
    topic: str

    @property
    def url(self) -> str:
        if self.platform is Platform.LEETCODE:
            return f"https://leetcode.com/problems/{self.problem_id}/"
        if self.platform is Platform.CODEFORCES:
            contest = self.problem_id.rstrip(string.ascii_uppercase)
            index = self.problem_id[len(contest):]
            return f"https://codeforces.com/problemset/problem/{contest}/{index}"
        return f"https://www.codechef.com/problems/{self.problem_id}"


def _lc(slug: str, title: str, difficulty: str, topic: str) -> Problem:
    return Problem(slug, title, Platform.LEETCODE, difficulty, topic)


def _cf(problem_id: str, title: str, difficulty: str, topic: str) -> Problem:
    return Problem(problem_id, title, Platform.CODEFORCES, difficulty, topic)


def _cc(code: str, title: str, difficulty: str, topic: str) -> Problem:
    return Problem(code, title, Platform.CODECHEF, difficulty, topic)


PROBLEMS: tuple[Problem, ...] = (
    # Arrays
    _lc("two-sum", "Two Sum", "Easy", "Arrays"),
    _lc("best-time-to-buy-and-sell-stock", "Best Time to Buy and Sell Stock", "Easy", "Arrays"),
    _lc("product-of-array-except-self", "Product of Array Except Self", "Medium", "Arrays"),
    _lc("merge-intervals", "Merge Intervals", "Medium", "Arrays"),
    _lc("trapping-rain-water", "Trapping Rain Water", "Hard", "Arrays"),
    _cf("4A", "Watermelon", "Easy", "Arrays"),
    _cf("1513C", "Array and Peaks", "Medium", "Arrays"),
    _cc("FLOW001", "Add Two Numbers", "Easy", "Arrays"),
    # Strings
    _lc("valid-anagram", "Valid Anagram", "Easy", "Strings"),
    _lc("longest-substring-without-repeating-characters",
        "Longest Substring Without Repeating Characters", "Medium", "Strings"),
    _lc("group-anagrams", "Group Anagrams", "Medium", "Strings"),
    _lc("minimum-window-substring", "Minimum Window Substring", "Hard", "Strings"),
    _cf("71A", "Way Too Long Words", "Easy", "Strings"),
    _cf("112A", "Petya and Strings", "Easy", "Strings"),
    # Linked Lists
    _lc("reverse-linked-list", "Reverse Linked List", "Easy", "Linked Lists"),
    _lc("merge-two-sorted-lists", "Merge Two Sorted Lists", "Easy", "Linked Lists"),
    _lc("add-two-numbers", "Add Two Numbers", "Medium", "Linked Lists"),
    _lc("lru-cache", "LRU Cache", "Medium", "Linked Lists"),
    _lc("reverse-nodes-in-k-group", "Reverse Nodes in k-Group", "Hard", "Linked Lists"),
    # Trees
    _lc("maximum-depth-of-binary-tree", "Maximum Depth of Binary Tree", "Easy", "Trees"),
    _lc("invert-binary-tree", "Invert Binary Tree", "Easy", "Trees"),
    _lc("binary-tree-level-order-traversal", "Binary Tree Level Order Traversal", "Medium", "Trees"),
    _lc("validate-binary-search-tree", "Validate Binary Search Tree", "Medium", "Trees"),
    _lc("binary-tree-maximum-path-sum", "Binary Tree Maximum Path Sum", "Hard", "Trees"),
    _cf("1099D", "Sum in the tree", "Medium", "Trees"),
    # Graphs
    _lc("number-of-islands", "Number of Islands", "Medium", "Graphs"),
    _lc("course-schedule", "Course Schedule", "Medium", "Graphs"),
    _lc("flood-fill", "Flood Fill", "Easy", "Graphs"),
    _lc("word-ladder", "Word Ladder", "Hard", "Graphs"),
    _cf("580C", "Kefa and Park", "Medium", "Graphs"),
    # Dynamic Programming
    _lc("climbing-stairs", "Climbing Stairs", "Easy", "Dynamic Programming"),
    _lc("house-robber", "House Robber", "Medium", "Dynamic Programming"),
    _lc("coin-change", "Coin Change", "Medium", "Dynamic Programming"),
    _lc("longest-increasing-subsequence", "Longest Increasing Subsequence", "Medium", "Dynamic Programming"),
    _lc("edit-distance", "Edit Distance", "Hard", "Dynamic Programming"),
    _cf("455A", "Boredom", "Medium", "Dynamic Programming"),
    # Binary Search
    _lc("binary-search", "Binary Search", "Easy", "Binary Search"),
    _lc("search-in-rotated-sorted-array", "Search in Rotated Sorted Array", "Medium", "Binary Search"),
    _lc("koko-eating-bananas", "Koko Eating Bananas", "Medium", "Binary Search"),
    _lc("median-of-two-sorted-arrays", "Median of Two Sorted Arrays", "Hard", "Binary Search"),
    _cc("HS08TEST", "ATM", "Easy", "Binary Search"),
    # Greedy
    _lc("jump-game", "Jump Game", "Medium", "Greedy"),
    _lc("assign-cookies", "Assign Cookies", "Easy", "Greedy"),
    _lc("candy", "Candy", "Hard", "Greedy"),
    _cf("158A", "Next Round", "Easy", "Greedy"),
    _cf("1335C", "Two Teams Composing", "Easy", "Greedy"),
)


def all_topics(problems: tuple[Problem, ...] = PROBLEMS) -> list[str]:
    """Topics in bank order, without duplicates."""
    seen: dict[str, None] = {}
    for problem in problems:
        seen.setdefault(problem.topic, None)
    return list(seen)


def problems_for_topic(topic: str, problems: tuple[Problem, ...] = PROBLEMS) -> list[Problem]:
    return [p for p in problems if p.topic == topic]


def topic_sizes(problems: tuple[Problem, ...] = PROBLEMS) -> dict[str, int]:
    sizes: dict[str, int] = {}
    for problem in problems:
        sizes[problem.topic] = sizes.get(problem.topic, 0) + 1
    return sizes
